"""Tests for the pricing error taxonomy and user-facing descriptions."""

import pytest

from pricing.services import (
    APITimeoutError,
    DataNotFoundError,
    InvalidResponseError,
    MaxRetriesExceeded,
    PricingError,
    RateLimitExceeded,
    SymbolNotFoundError,
    UpstreamClientError,
    UpstreamConnectionError,
    UpstreamServerError,
    describe_error,
)


@pytest.mark.parametrize("error,retryable", [
    (APITimeoutError("slow"), True),
    (UpstreamServerError("500", status=500), True),
    (UpstreamConnectionError("reset"), True),
    (UpstreamClientError("404", status=404), False),
    (InvalidResponseError("bad json"), False),
    (SymbolNotFoundError("missing"), False),
    (RateLimitExceeded("busy"), False),
    (MaxRetriesExceeded("gave up", attempts=3), False),
    (DataNotFoundError("GHOST"), False),
])
def test_retryable_flags(error, retryable):
    assert isinstance(error, PricingError)
    assert error.retryable is retryable


def test_retryable_override():
    assert UpstreamServerError("500", retryable=False).retryable is False


def test_to_dict():
    error = SymbolNotFoundError("Price not found for symbol TCS", symbol="TCS")

    assert error.to_dict() == {
        "code": "SYMBOL_NOT_FOUND",
        "message": "Price not found for symbol TCS",
        "symbol": "TCS",
        "retryable": False,
    }


class TestDescribeError:
    """User-facing error descriptions."""

    def test_rate_limit(self):
        info = describe_error(RateLimitExceeded("Burst rate limit exceeded"))

        assert info["severity"] == "low"
        assert info["actionable"] is True
        assert "temporarily busy" in info["user_message"]
        assert info["technical_message"] == "Burst rate limit exceeded"

    def test_data_not_found_names_symbol(self):
        info = describe_error(DataNotFoundError("GHOST"))

        assert info["user_message"] == "Price data not available for GHOST"
        assert info["severity"] == "high"
        assert info["actionable"] is False

    def test_timeout(self):
        info = describe_error(APITimeoutError("timed out"))

        assert "Check your internet connection" in info["suggested_actions"]

    def test_max_retries(self):
        info = describe_error(MaxRetriesExceeded("gave up", attempts=3))

        assert info["severity"] == "high"

    def test_unexpected_error(self):
        info = describe_error(RuntimeError("boom"))

        assert info["user_message"] == "Unexpected error while fetching price data"
        assert info["technical_message"] == "boom"
