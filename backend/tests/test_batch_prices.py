"""Tests for batch lookups and bulk refresh."""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from pricing.services import UpstreamServerError


class TestBatchGetPrices:
    """One upstream request for many symbols."""

    @pytest.mark.asyncio
    async def test_empty_input(self, price_service, mock_client):
        assert await price_service.batch_get_prices([]) == []
        mock_client.fetch_quotes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_request_with_qualified_symbols(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:TCS": 3500.0, "MUTF_IN:AXIS_BLUE": 52.1}

        await price_service.batch_get_prices(["TCS", "AXIS_BLUE", "BSE:500325"])

        mock_client.fetch_quotes.assert_awaited_once_with(["NSE:TCS", "MUTF_IN:AXIS_BLUE", "BSE:500325"])

    @pytest.mark.asyncio
    async def test_partial_success(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:GOOD": 100.0}

        results = await price_service.batch_get_prices(["GOOD", "BAD"])

        assert [r.symbol for r in results] == ["GOOD", "BAD"]
        assert results[0].price == 100.0
        assert results[0].error is None
        assert results[0].source == "GOOGLE_SCRIPT"
        assert results[1].price is None
        assert results[1].error == "Price not available for BAD"

    @pytest.mark.asyncio
    async def test_successes_are_recorded(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:GOOD": 100.0}

        await price_service.batch_get_prices(["GOOD", "BAD"])

        assert (await price_service.get_cached_price("GOOD")).price == 100.0
        assert await price_service.get_cached_price("BAD") is None
        assert len(await price_service.get_price_history("GOOD")) == 1

    @pytest.mark.asyncio
    async def test_duplicates_fetched_and_recorded_once(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:TCS": 3500.0}

        results = await price_service.batch_get_prices(["TCS", "TCS"])

        assert [r.price for r in results] == [3500.0, 3500.0]
        mock_client.fetch_quotes.assert_awaited_once_with(["NSE:TCS"])
        assert len(await price_service.get_price_history("TCS")) == 1

    @pytest.mark.asyncio
    async def test_bulk_failure_answers_from_cache(self, price_service, mock_client, seed_quote):
        await seed_quote("FRESH", 10.0, age=timedelta(minutes=5))
        await seed_quote("OLD", 20.0, age=timedelta(hours=3))
        mock_client.fetch_quotes.side_effect = UpstreamServerError("HTTP 502", status=502)

        results = await price_service.batch_get_prices(["FRESH", "OLD", "NONE"])

        by_symbol = {r.symbol: r for r in results}
        assert by_symbol["FRESH"].price == 10.0
        assert by_symbol["FRESH"].error is None
        assert by_symbol["OLD"].price == 20.0
        assert by_symbol["OLD"].error == "stale"
        assert by_symbol["NONE"].price is None
        assert by_symbol["NONE"].error == "No cached data available"
        assert mock_client.fetch_quotes.await_count == price_service.settings.max_retries
        assert by_symbol["FRESH"].cached is True
        assert by_symbol["OLD"].cached is True
        assert by_symbol["NONE"].cached is False
        assert by_symbol["FRESH"].to_dict() == {
            "symbol": "FRESH", "price": 10.0, "source": "GOOGLE_SCRIPT", "cached": True,
        }

    @pytest.mark.asyncio
    async def test_bulk_failure_does_not_write(self, price_service, mock_client, seed_quote):
        await seed_quote("OLD", 20.0, age=timedelta(hours=3))
        mock_client.fetch_quotes.side_effect = UpstreamServerError("HTTP 502", status=502)

        await price_service.batch_get_prices(["OLD"])

        assert (await price_service.get_cached_price("OLD")).is_stale
        assert await price_service.get_price_history("OLD") == []

    @pytest.mark.asyncio
    async def test_result_serialization(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:GOOD": 100.0}

        good, bad = await price_service.batch_get_prices(["GOOD", "BAD"])

        assert good.to_dict() == {"symbol": "GOOD", "price": 100.0, "source": "GOOGLE_SCRIPT"}
        assert bad.to_dict() == {"symbol": "BAD", "price": None, "error": "Price not available for BAD"}


class TestRefreshPrices:
    """Batched refresh runs."""

    @pytest.mark.asyncio
    async def test_splits_into_batches(self, price_service, mock_client):
        price_service.settings.batch_size = 2
        symbols = ["A", "B", "C", "D", "E"]
        mock_client.fetch_quotes.return_value = {f"NSE:{s}": 1.0 for s in symbols}

        result = await price_service.refresh_prices(symbols)

        assert result.success == 5
        assert result.failed == 0
        assert [c.args[0] for c in mock_client.fetch_quotes.await_args_list] == [
            ["NSE:A", "NSE:B"],
            ["NSE:C", "NSE:D"],
            ["NSE:E"],
        ]

    @pytest.mark.asyncio
    async def test_sleeps_between_batches_only(self, price_service, mock_client):
        price_service.settings.batch_size = 2
        price_service.settings.batch_delay_seconds = 1.5

        with patch("pricing.services.price_service.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await price_service.refresh_prices(["A", "B", "C", "D", "E"])

        assert [c.args[0] for c in sleep.await_args_list] == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_counts_failures(self, price_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:A": 1.0}

        result = await price_service.refresh_prices(["A", "B"])

        assert result.success == 1
        assert result.failed == 1
        failed = [r for r in result.results if not r["success"]]
        assert failed[0]["symbol"] == "B"
        assert failed[0]["error"] == "Price not available for B"

    @pytest.mark.asyncio
    async def test_cache_served_symbols_count_as_failed(self, price_service, mock_client, seed_quote):
        await seed_quote("TCS", 3500.0, age=timedelta(minutes=5))
        await seed_quote("INFY", 1500.0, age=timedelta(hours=3))
        mock_client.fetch_quotes.side_effect = UpstreamServerError("HTTP 503", status=503)

        result = await price_service.refresh_prices(["TCS", "INFY"])

        assert result.success == 0
        assert result.failed == 2
        by_symbol = {r["symbol"]: r for r in result.results}
        assert by_symbol["TCS"]["error"] == "Upstream unavailable, served fresh cached price"
        assert by_symbol["TCS"]["price"] == 3500.0
        assert by_symbol["INFY"]["error"] == "Upstream unavailable, served stale cached price"

    @pytest.mark.asyncio
    async def test_refresh_all_uses_cached_symbols(self, price_service, mock_client, seed_quote):
        await seed_quote("TCS", 1.0, age=timedelta(hours=2))
        await seed_quote("INFY", 1.0, age=timedelta(hours=2))
        mock_client.fetch_quotes.return_value = {"NSE:TCS": 3500.0, "NSE:INFY": 1500.0}

        result = await price_service.refresh_all_prices()

        assert result.success == 2
        assert (await price_service.get_cached_price("TCS")).is_fresh
