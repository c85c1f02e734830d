"""Scheduled price refresh.

Refreshes every tracked symbol on a fixed interval, in batches, so cached
prices stay fresh without page requests having to hit the upstream API.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .price_service import PriceService, RefreshResult

logger = logging.getLogger(__name__)


class BackgroundPriceRefreshService:
    """Runs PriceService.refresh_all_prices in a background asyncio task."""

    DEFAULT_INTERVAL_SECONDS = 60 * 60

    def __init__(self, price_service: PriceService):
        self.price_service = price_service
        self._task: Optional[asyncio.Task] = None
        self._interval: Optional[float] = None
        self._is_refreshing = False
        self._last_result: Optional[RefreshResult] = None
        self._last_run: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, interval_seconds: Optional[float] = None) -> None:
        """Run one refresh now, then keep refreshing every interval."""
        if self.running:
            logger.info("Background price refresh already running")
            return

        self._interval = interval_seconds or self.DEFAULT_INTERVAL_SECONDS
        logger.info(f"Starting background price refresh every {self._interval / 60:g} minutes")

        try:
            await self.refresh_all()
        except Exception as e:
            logger.error(f"Initial price refresh failed: {e}")
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Background price refresh stopped")
        self._interval = None

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.refresh_all()
            except Exception as e:
                # Keep the schedule alive; the next tick retries
                logger.error(f"Scheduled price refresh failed: {e}")

    async def refresh_all(self) -> Optional[RefreshResult]:
        """Refresh every tracked symbol. Returns None if a refresh is already in progress."""
        if self._is_refreshing:
            logger.info("Price refresh already in progress, skipping")
            return None

        self._is_refreshing = True
        started = datetime.utcnow()
        try:
            result = await self.price_service.refresh_all_prices()
            self._last_result = result
            self._last_run = started

            duration = (datetime.utcnow() - started).total_seconds()
            logger.info(f"Refresh completed in {duration:.1f}s: {result.success} success, {result.failed} failed")
            for failure in [r for r in result.results if not r["success"]][:5]:
                logger.warning(f"Refresh failed for {failure['symbol']}: {failure['error']}")
            return result
        finally:
            self._is_refreshing = False

    async def refresh_specific_symbols(self, symbols: List[str]) -> RefreshResult:
        """Manual refresh for the given symbols (UI refresh buttons)."""
        logger.info(f"Manual refresh requested for {len(symbols)} symbols")
        return await self.price_service.refresh_prices(symbols)

    def get_status(self) -> Dict[str, Any]:
        settings = self.price_service.settings
        return {
            "running": self.running,
            "is_refreshing": self._is_refreshing,
            "interval_seconds": self._interval,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_result": (
                {"success": self._last_result.success, "failed": self._last_result.failed}
                if self._last_result else None
            ),
            "config": {
                "batch_size": settings.batch_size,
                "batch_delay_seconds": settings.batch_delay_seconds,
                "max_retries": settings.max_retries,
                "base_retry_delay_seconds": settings.base_retry_delay_seconds,
            },
        }

    async def get_refresh_statistics(self) -> Dict[str, Any]:
        cache = await self.price_service.get_cache_stats()
        history = await self.price_service.history.stats()
        return {
            "total_cached_prices": cache["count"],
            "fresh_prices": cache["fresh_count"],
            "stale_prices": cache["count"] - cache["fresh_count"],
            "last_refresh_time": cache["newest_entry"],
            "price_history_count": history["count"],
            "unique_symbols_tracked": cache["count"],
        }

    async def health_check(self) -> Dict[str, Any]:
        issues = []
        stats = await self.get_refresh_statistics()

        if not self.running:
            issues.append("Background refresh service is not running")
        if stats["total_cached_prices"] == 0:
            issues.append("No cached price data available")
        elif stats["fresh_prices"] == 0:
            fresh_window = timedelta(seconds=self.price_service.settings.fresh_threshold_seconds)
            issues.append(f"All cached prices are stale (older than {fresh_window})")

        return {
            "status": "unhealthy" if issues else "healthy",
            "running": self.running,
            "last_refresh_time": stats["last_refresh_time"],
            "issues": issues,
        }
