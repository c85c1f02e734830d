"""Pricing error taxonomy.

Every failure in the price pipeline is a PricingError carrying a machine
readable code and a retryable flag. The retry executor only retries errors
whose flag is set; everything else short-circuits to the fallback ladder.
"""

from datetime import datetime
from typing import Optional


class PricingError(Exception):
    """Base class for price fetch failures."""

    code = "PRICING_ERROR"
    default_retryable = True

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        retryable: Optional[bool] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.symbol = symbol
        self.original_error = original_error
        self.retryable = self.default_retryable if retryable is None else retryable
        if code is not None:
            self.code = code

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "symbol": self.symbol,
            "retryable": self.retryable,
        }


class RateLimitExceeded(PricingError):
    """Raised by the rate limiter when a window is full. Never retried in place."""

    code = "RATE_LIMIT_EXCEEDED"
    default_retryable = False

    def __init__(
        self,
        message: str,
        reset_time: Optional[datetime] = None,
        symbol: Optional[str] = None,
    ):
        super().__init__(message, symbol=symbol)
        self.reset_time = reset_time


class APITimeoutError(PricingError):
    """A single upstream attempt ran past its deadline."""

    code = "API_TIMEOUT"


class UpstreamServerError(PricingError):
    """Upstream answered with a 5xx status."""

    code = "UPSTREAM_SERVER_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class UpstreamConnectionError(PricingError):
    """The request never got an HTTP answer (DNS, reset, TLS, ...)."""

    code = "UPSTREAM_CONNECTION_ERROR"


class UpstreamClientError(PricingError):
    """Upstream rejected the request (4xx other than 429)."""

    code = "UPSTREAM_CLIENT_ERROR"
    default_retryable = False

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class InvalidResponseError(UpstreamClientError):
    """Upstream body was not a JSON object of prices."""

    code = "INVALID_RESPONSE"


class SymbolNotFoundError(PricingError):
    """Upstream answered but the symbol was absent from the response."""

    code = "SYMBOL_NOT_FOUND"
    default_retryable = False


class MaxRetriesExceeded(PricingError):
    """Terminal wrapper around the last retryable error."""

    code = "MAX_RETRIES_EXCEEDED"
    default_retryable = False

    def __init__(self, message: str, attempts: int, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class DataNotFoundError(PricingError):
    """No price at any tier of the fallback ladder."""

    code = "DATA_NOT_FOUND"
    default_retryable = False

    def __init__(self, symbol: str, message: Optional[str] = None):
        super().__init__(
            message or f"No price data available for {symbol} (fresh, stale, or historical)",
            symbol=symbol,
        )


def describe_error(error: BaseException, symbol: Optional[str] = None) -> dict:
    """Translate an error into a message fit for end users.

    Returns:
        Dict with user_message, technical_message, severity, actionable
        and suggested_actions.
    """
    suggested_actions = []
    user_message = "Unable to fetch current price data"
    severity = "medium"
    actionable = True

    if isinstance(error, RateLimitExceeded):
        user_message = "Price service is temporarily busy. Please try again in a few minutes."
        severity = "low"
        suggested_actions += ["Wait a few minutes and try again", "Use cached data if available"]
    elif isinstance(error, APITimeoutError):
        user_message = "Price service is taking longer than usual to respond."
        suggested_actions += ["Check your internet connection", "Try again in a few moments"]
    elif isinstance(error, DataNotFoundError):
        target = symbol or error.symbol
        user_message = (
            f"Price data not available for {target}" if target
            else "Price data not available for the requested symbol"
        )
        severity = "high"
        actionable = False
        suggested_actions += ["Verify the symbol is correct", "Check if the security is actively traded"]
    elif isinstance(error, MaxRetriesExceeded):
        user_message = "Unable to fetch current prices after multiple attempts"
        severity = "high"
        suggested_actions += ["Check your internet connection", "Try again later"]
    elif isinstance(error, PricingError):
        user_message = "Price service temporarily unavailable"
        suggested_actions.append("Try again in a few minutes")
    else:
        user_message = "Unexpected error while fetching price data"
        severity = "high"
        suggested_actions += ["Try refreshing the page", "Contact support if the issue persists"]

    return {
        "user_message": user_message,
        "technical_message": str(error),
        "severity": severity,
        "actionable": actionable,
        "suggested_actions": suggested_actions,
    }
