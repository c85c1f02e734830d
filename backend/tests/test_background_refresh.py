"""Tests for the background price refresh service."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from pricing.services import RefreshResult


class TestLifecycle:
    """Start and stop."""

    @pytest.mark.asyncio
    async def test_start_refreshes_immediately(self, refresh_service, mock_client, seed_quote):
        await seed_quote("TCS", 1.0, age=timedelta(hours=2))
        mock_client.fetch_quotes.return_value = {"NSE:TCS": 3500.0}

        await refresh_service.start(interval_seconds=3600)
        try:
            assert refresh_service.running
            mock_client.fetch_quotes.assert_awaited_once_with(["NSE:TCS"])
            assert refresh_service.get_status()["last_result"] == {"success": 1, "failed": 0}
        finally:
            await refresh_service.stop()

        assert not refresh_service.running
        assert refresh_service.get_status()["interval_seconds"] is None

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, refresh_service, mock_client):
        await refresh_service.start(interval_seconds=3600)
        task = refresh_service._task
        try:
            await refresh_service.start(interval_seconds=3600)
            assert refresh_service._task is task
        finally:
            await refresh_service.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, refresh_service):
        await refresh_service.stop()

        assert not refresh_service.running

    @pytest.mark.asyncio
    async def test_loop_survives_refresh_errors(self, refresh_service, price_service):
        price_service.refresh_all_prices = AsyncMock(side_effect=[
            RefreshResult(),
            RuntimeError("database locked"),
            RefreshResult(success=1),
        ])

        await refresh_service.start(interval_seconds=0.01)
        try:
            for _ in range(100):
                if price_service.refresh_all_prices.await_count >= 3:
                    break
                await asyncio.sleep(0.01)
        finally:
            await refresh_service.stop()

        assert price_service.refresh_all_prices.await_count >= 3

    @pytest.mark.asyncio
    async def test_schedule_starts_when_initial_refresh_fails(self, refresh_service, price_service):
        outcomes = [RuntimeError("db down")]

        async def refresh():
            if outcomes:
                raise outcomes.pop()
            return RefreshResult()

        price_service.refresh_all_prices = AsyncMock(side_effect=refresh)

        await refresh_service.start(interval_seconds=0.01)
        try:
            assert refresh_service.running
            for _ in range(100):
                if price_service.refresh_all_prices.await_count >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await refresh_service.stop()

        assert price_service.refresh_all_prices.await_count >= 2
        assert refresh_service.get_status()["last_result"] is not None


class TestRefresh:
    """Manual refresh entry points."""

    @pytest.mark.asyncio
    async def test_concurrent_refresh_is_skipped(self, refresh_service, price_service):
        gate = asyncio.Event()

        async def slow_refresh():
            await gate.wait()
            return RefreshResult(success=1)

        price_service.refresh_all_prices = AsyncMock(side_effect=slow_refresh)

        first = asyncio.create_task(refresh_service.refresh_all())
        await asyncio.sleep(0)
        assert await refresh_service.refresh_all() is None

        gate.set()
        result = await first
        assert result.success == 1
        assert refresh_service.get_status()["is_refreshing"] is False

    @pytest.mark.asyncio
    async def test_refresh_specific_symbols(self, refresh_service, mock_client):
        mock_client.fetch_quotes.return_value = {"NSE:INFY": 1500.0}

        result = await refresh_service.refresh_specific_symbols(["INFY", "WIPRO"])

        assert result.success == 1
        assert result.failed == 1


class TestStatistics:
    """Status, statistics and health."""

    @pytest.mark.asyncio
    async def test_statistics(self, refresh_service, seed_quote, seed_history):
        await seed_quote("A", 1.0)
        await seed_quote("B", 2.0, age=timedelta(hours=5))
        await seed_history("A", 1.0)

        stats = await refresh_service.get_refresh_statistics()

        assert stats["total_cached_prices"] == 2
        assert stats["fresh_prices"] == 1
        assert stats["stale_prices"] == 1
        assert stats["price_history_count"] == 1
        assert stats["last_refresh_time"] is not None

    @pytest.mark.asyncio
    async def test_status_config(self, refresh_service, settings):
        status = refresh_service.get_status()

        assert status["running"] is False
        assert status["last_run"] is None
        assert status["config"]["batch_size"] == settings.batch_size

    @pytest.mark.asyncio
    async def test_health_reports_issues(self, refresh_service, seed_quote):
        health = await refresh_service.health_check()

        assert health["status"] == "unhealthy"
        assert "Background refresh service is not running" in health["issues"]
        assert "No cached price data available" in health["issues"]

        await seed_quote("A", 1.0, age=timedelta(hours=3))
        health = await refresh_service.health_check()
        assert any(issue.startswith("All cached prices are stale") for issue in health["issues"])

    @pytest.mark.asyncio
    async def test_healthy_when_running_with_fresh_data(self, refresh_service, mock_client, seed_quote):
        await seed_quote("A", 1.0, age=timedelta(hours=3))
        mock_client.fetch_quotes.return_value = {"NSE:A": 2.0}

        await refresh_service.start(interval_seconds=3600)
        try:
            health = await refresh_service.health_check()
        finally:
            await refresh_service.stop()

        assert health["status"] == "healthy"
        assert health["issues"] == []
