"""Price resolution facade.

Entry point the rest of the application uses to get prices:
- get_price / get_price_with_fallback for a single symbol
- batch_get_prices for many symbols in one upstream request
- cache statistics, maintenance and history/trend queries

A fetch goes rate limiter -> retry(timeout(upstream)) -> cache + history
write. Any failure on that path degrades to the fallback ladder; only
DataNotFoundError escapes to callers.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import async_session_maker
from .config import PricingSettings
from .errors import PricingError, SymbolNotFoundError, describe_error
from .fallback import Confidence, FallbackResolver, ResolvedPrice
from .quote_store import CachedQuote, PriceHistoryLog, QuoteStore, StalenessThresholds
from .rate_limiter import APIRateLimiter
from .resilience import RetryPolicy, fetch_with_resilience
from .symbols import format_symbol
from .upstream import GoogleScriptClient, is_valid_price

logger = logging.getLogger(__name__)

TrackedSymbolsProvider = Callable[[], Awaitable[Iterable[str]]]


@dataclass
class BatchPriceResult:
    """Outcome for one symbol of a batch lookup."""
    symbol: str
    price: Optional[float]
    error: Optional[str] = None
    source: Optional[str] = None
    # Answered from the cache because the upstream request failed
    cached: bool = False

    def to_dict(self):
        """Convert to dictionary for API responses."""
        result = {"symbol": self.symbol, "price": self.price}
        if self.error is not None:
            result["error"] = self.error
        if self.source is not None:
            result["source"] = self.source
        if self.cached:
            result["cached"] = True
        return result


@dataclass
class RefreshResult:
    """Summary of a bulk refresh run."""
    success: int = 0
    failed: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, outcome: BatchPriceResult) -> None:
        entry = {
            "symbol": outcome.symbol,
            "success": outcome.price is not None and outcome.error is None and not outcome.cached,
            "refresh_time": datetime.utcnow().isoformat(),
        }
        if entry["success"]:
            self.success += 1
            entry["price"] = outcome.price
        else:
            self.failed += 1
            if outcome.cached:
                entry["error"] = f"Upstream unavailable, served {outcome.error or 'fresh'} cached price"
            else:
                entry["error"] = outcome.error or "Price not available or invalid"
            if outcome.price is not None:
                entry["price"] = outcome.price
        self.results.append(entry)

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {"success": self.success, "failed": self.failed, "results": list(self.results)}


class PriceService:
    """Resolves prices for tracked holdings with caching and graceful degradation.

    All state (rate-limit counters, stores, upstream client) belongs to the
    instance, so independent instances never interfere with each other.
    """

    def __init__(
        self,
        settings: Optional[PricingSettings] = None,
        session_factory: Optional[async_sessionmaker] = None,
        client: Optional[GoogleScriptClient] = None,
        rate_limiter: Optional[APIRateLimiter] = None,
        tracked_symbols_provider: Optional[TrackedSymbolsProvider] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize the price service.

        Args:
            settings: Pipeline tunables; defaults to PricingSettings()
            session_factory: Async session factory for the two stores
            client: Upstream quote client
            rate_limiter: Shared limiter; a private one is created if omitted
            tracked_symbols_provider: Coroutine returning the symbols of all
                current holdings, used by refresh and orphan cleanup
            clock: Returns the current naive UTC time
        """
        self.settings = settings or PricingSettings()
        self._session_factory = session_factory or async_session_maker
        self._clock = clock

        self.quote_store = QuoteStore(
            self._session_factory,
            StalenessThresholds(
                fresh=self.settings.fresh_threshold_seconds,
                stale=self.settings.stale_threshold_seconds,
                max_age=self.settings.max_stale_age_seconds,
            ),
            clock=clock,
        )
        self.history = PriceHistoryLog(self._session_factory, clock=clock)
        self.fallback = FallbackResolver(
            self.quote_store,
            self.history,
            average_days=self.settings.historical_average_days,
            average_limit=self.settings.historical_average_limit,
            clock=clock,
        )
        self.client = client or GoogleScriptClient(
            self.settings.api_url,
            auth_token=self.settings.auth_token,
            service_key=self.settings.service_key,
        )
        self.rate_limiter = rate_limiter or APIRateLimiter(self.settings.rate_limits)
        self.retry_policy = RetryPolicy(
            max_retries=self.settings.max_retries,
            base_delay=self.settings.base_retry_delay_seconds,
            max_delay=self.settings.max_retry_delay_seconds,
            multiplier=self.settings.retry_multiplier,
        )
        self._tracked_symbols_provider = tracked_symbols_provider

    @property
    def service_key(self) -> str:
        return self.settings.service_key

    # ------------------------------------------------------------------
    # Single symbol
    # ------------------------------------------------------------------

    async def get_price_with_fallback(self, symbol: str, force_refresh: bool = False) -> ResolvedPrice:
        """Resolve a price, degrading through cached and historical data on failure.

        Args:
            symbol: Bare or qualified symbol
            force_refresh: Skip the fresh-cache shortcut and always fetch

        Raises:
            DataNotFoundError: When neither upstream nor any fallback tier has a price
        """
        try:
            self.rate_limiter.check_rate_limit(self.service_key)

            if not force_refresh:
                cached = await self.quote_store.get_with_age(symbol)
                if cached and cached.is_fresh:
                    return ResolvedPrice(
                        price=cached.price,
                        source=cached.source,
                        cached=True,
                        fallback_used=False,
                        confidence=Confidence.HIGH,
                        age_seconds=cached.age_seconds,
                    )

            price = await fetch_with_resilience(
                lambda: self._fetch_single(symbol),
                policy=self.retry_policy,
                timeout=self.settings.api_timeout_seconds,
                symbol=symbol,
                operation_type=f"{self.service_key} price fetch",
            )
        except PricingError as e:
            logger.warning(f"Fresh price fetch failed for {symbol}: {e}")
            return await self.fallback.resolve_with_fallback(symbol)

        await self._record(symbol, price)
        return ResolvedPrice(
            price=price,
            source=self.service_key,
            cached=False,
            fallback_used=False,
            confidence=Confidence.HIGH,
        )

    async def get_price(self, symbol: str, force_refresh: bool = False) -> float:
        """Price only. Raises DataNotFoundError on total failure."""
        resolved = await self.get_price_with_fallback(symbol, force_refresh=force_refresh)
        return resolved.price

    async def get_cached_price(self, symbol: str) -> Optional[CachedQuote]:
        return await self.quote_store.get_with_age(symbol)

    async def _fetch_single(self, symbol: str) -> float:
        qualified = format_symbol(symbol)
        prices = await self.client.fetch_quotes([qualified])
        price = prices.get(qualified)
        if not is_valid_price(price):
            raise SymbolNotFoundError(f"Price not found for symbol {symbol}", symbol=symbol)
        return price

    async def _record(self, symbol: str, price: float) -> None:
        """Write a fresh price to the cache and the history log."""
        try:
            await self.quote_store.set(symbol, price, self.service_key)
            await self.history.append(symbol, price, self.service_key)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store price for {symbol}: {e}")

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def batch_get_prices(self, symbols: List[str]) -> List[BatchPriceResult]:
        """Prices for many symbols from a single upstream request.

        Symbols missing from the response get price None with an error; the
        rest still succeed. If the whole request fails, every symbol is
        answered from the raw cache instead.
        """
        if not symbols:
            return []

        qualified = list(dict.fromkeys(format_symbol(s) for s in symbols))

        try:
            self.rate_limiter.check_rate_limit(self.service_key)
            prices = await fetch_with_resilience(
                lambda: self.client.fetch_quotes(qualified),
                policy=self.retry_policy,
                timeout=self.settings.api_timeout_seconds,
                operation_type=f"{self.service_key} batch price fetch",
            )
        except PricingError as e:
            logger.warning(f"Batch price fetch failed for {len(symbols)} symbols, using cache: {e}")
            return list(await asyncio.gather(*(self._cached_batch_result(s) for s in symbols)))

        results = []
        recorded = set()
        for symbol in symbols:
            price = prices.get(format_symbol(symbol))
            if not is_valid_price(price):
                results.append(BatchPriceResult(symbol, None, error=f"Price not available for {symbol}"))
                continue
            if symbol not in recorded:
                await self._record(symbol, price)
                recorded.add(symbol)
            results.append(BatchPriceResult(symbol, price, source=self.service_key))

        return results

    async def _cached_batch_result(self, symbol: str) -> BatchPriceResult:
        cached = await self.quote_store.get_with_age(symbol)
        if cached is None:
            return BatchPriceResult(symbol, None, error="No cached data available")
        return BatchPriceResult(
            symbol,
            cached.price,
            error=None if cached.is_fresh else "stale",
            source=cached.source,
            cached=True,
        )

    async def refresh_prices(self, symbols: List[str]) -> RefreshResult:
        """Refresh symbols in fixed-size batches, pausing between batches."""
        result = RefreshResult()
        batch_size = self.settings.batch_size
        total_batches = (len(symbols) + batch_size - 1) // batch_size

        for i in range(0, len(symbols), batch_size):
            batch = symbols[i:i + batch_size]
            logger.info(f"Refreshing batch {i // batch_size + 1}/{total_batches} ({len(batch)} symbols)")

            for outcome in await self.batch_get_prices(batch):
                result.add(outcome)

            if i + batch_size < len(symbols) and self.settings.batch_delay_seconds > 0:
                await asyncio.sleep(self.settings.batch_delay_seconds)

        logger.info(f"Price refresh completed: {result.success} success, {result.failed} failed")
        return result

    async def tracked_symbols(self) -> List[str]:
        """Symbols of current holdings if a provider is set, else every cached symbol."""
        if self._tracked_symbols_provider is not None:
            return sorted(set(await self._tracked_symbols_provider()))
        return await self.quote_store.tracked_symbols()

    async def refresh_all_prices(self) -> RefreshResult:
        symbols = await self.tracked_symbols()
        logger.info(f"Starting refresh for {len(symbols)} tracked symbols")
        return await self.refresh_prices(symbols)

    # ------------------------------------------------------------------
    # Cache maintenance and queries
    # ------------------------------------------------------------------

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.quote_store.stats()

    async def get_enhanced_cache_stats(self) -> Dict[str, Any]:
        stats = await self.quote_store.stats()
        stats["price_history"] = await self.history.stats()
        return stats

    async def clear_cache(self) -> int:
        deleted = await self.quote_store.delete_all()
        logger.info(f"Cleared {deleted} cached prices")
        return deleted

    async def cleanup_orphaned_cache_entries(self, active_symbols: Optional[Iterable[str]] = None) -> int:
        """Delete cache entries for symbols no longer held anywhere.

        Args:
            active_symbols: Symbols to keep; defaults to the tracked symbols provider

        Raises:
            ValueError: If neither active_symbols nor a provider is available
        """
        if active_symbols is None:
            if self._tracked_symbols_provider is None:
                raise ValueError("No tracked symbols provider configured for orphan cleanup")
            active_symbols = await self._tracked_symbols_provider()

        deleted = await self.quote_store.delete_except(active_symbols)
        logger.info(f"Removed {deleted} orphaned cache entries")
        return deleted

    async def cleanup_price_history(self, days_to_keep: Optional[int] = None) -> int:
        days = days_to_keep if days_to_keep is not None else self.settings.history_retention_days
        deleted = await self.history.prune(self._clock() - timedelta(days=days))
        logger.info(f"Cleaned up {deleted} price history records older than {days} days")
        return deleted

    async def get_price_history(
        self,
        symbol: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        records = await self.history.query_recent(symbol, since=start, until=end, limit=limit)
        return [r.to_dict() for r in records]

    async def get_price_trend(self, symbol: str, days: int = 30) -> Dict[str, Any]:
        """Compare the newest and oldest recorded price within the last `days` days."""
        end = self._clock()
        history = await self.history.query_recent(symbol, since=end - timedelta(days=days), until=end)

        trend = {
            "current_price": None,
            "previous_price": None,
            "change": None,
            "change_percent": None,
            "trend": "unknown",
            "data_points": len(history),
        }
        if not history:
            return trend

        current = history[0].price
        trend["current_price"] = current
        if len(history) < 2:
            return trend

        previous = history[-1].price
        change = current - previous
        trend["previous_price"] = previous
        trend["change"] = change
        if previous:
            change_percent = change / previous * 100
            trend["change_percent"] = change_percent
            if abs(change_percent) < 0.1:
                trend["trend"] = "stable"
            else:
                trend["trend"] = "up" if change > 0 else "down"

        return trend

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def _check_database(self) -> Dict[str, Any]:
        start = time.monotonic()
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "up", "response_time_ms": round((time.monotonic() - start) * 1000)}
        except SQLAlchemyError as e:
            return {"status": "down", "error": str(e)}

    async def health_check(self) -> Dict[str, Any]:
        """Upstream and database reachability plus rate limit headroom."""
        services = {
            "upstream": await self.client.ping(),
            "database": await self._check_database(),
        }

        up = sum(1 for s in services.values() if s["status"] == "up")
        if up == len(services):
            status = "healthy"
        elif up:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "services": services,
            "rate_limits": {self.service_key: self.rate_limiter.get_rate_limit_status(self.service_key)},
        }

    @staticmethod
    def describe_error(error: BaseException, symbol: Optional[str] = None) -> Dict[str, Any]:
        return describe_error(error, symbol)
