"""Fallback ladder used when a fresh fetch is unavailable.

Tiers are tried top-down and the first usable one wins:
fresh cache -> stale cache -> expired cache (under max age) ->
historical average -> DataNotFoundError.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from .errors import DataNotFoundError
from .quote_store import QuoteStore, PriceHistoryLog

logger = logging.getLogger(__name__)

HISTORICAL_AVERAGE_SOURCE = "HISTORICAL_AVERAGE"


class Confidence(str, Enum):
    """Coarse trust labels for a resolved price."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ResolvedPrice:
    """A price plus where it came from and how much to trust it."""
    price: float
    source: str
    cached: bool
    fallback_used: bool
    confidence: Confidence
    warnings: List[str] = field(default_factory=list)
    age_seconds: Optional[float] = None

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "price": self.price,
            "source": self.source,
            "cached": self.cached,
            "fallback_used": self.fallback_used,
            "confidence": self.confidence.value,
            "warnings": list(self.warnings),
            "age_seconds": self.age_seconds,
        }


class FallbackResolver:
    """Walks the degradation ladder for a single symbol."""

    def __init__(
        self,
        quote_store: QuoteStore,
        history: PriceHistoryLog,
        average_days: int = 30,
        average_limit: int = 100,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.quote_store = quote_store
        self.history = history
        self.average_days = average_days
        self.average_limit = average_limit
        self._clock = clock

    async def resolve_with_fallback(self, symbol: str) -> ResolvedPrice:
        """Best available price for symbol without touching the network.

        Raises:
            DataNotFoundError: When no tier has data
        """
        cached = await self.quote_store.get_with_age(symbol)

        if cached:
            if cached.is_fresh:
                return ResolvedPrice(
                    price=cached.price,
                    source=cached.source,
                    cached=True,
                    fallback_used=False,
                    confidence=Confidence.HIGH,
                    age_seconds=cached.age_seconds,
                )

            if cached.is_stale:
                hours = round(cached.age_seconds / 3600)
                logger.warning(f"Using stale cache for {symbol} ({hours} hours old)")
                return ResolvedPrice(
                    price=cached.price,
                    source=f"{cached.source}_STALE",
                    cached=True,
                    fallback_used=True,
                    confidence=Confidence.MEDIUM,
                    warnings=[f"Using stale data ({hours} hours old)"],
                    age_seconds=cached.age_seconds,
                )

            if cached.is_expired and not cached.is_too_old:
                days = round(cached.age_seconds / 86400)
                logger.warning(f"Using expired cache for {symbol} ({days} days old)")
                return ResolvedPrice(
                    price=cached.price,
                    source=f"{cached.source}_EXPIRED",
                    cached=True,
                    fallback_used=True,
                    confidence=Confidence.LOW,
                    warnings=[f"Using expired data ({days} days old)"],
                    age_seconds=cached.age_seconds,
                )

        since = self._clock() - timedelta(days=self.average_days)
        average = await self.history.average_since(symbol, since, limit=self.average_limit)
        if average is not None:
            logger.warning(f"Using historical average for {symbol}")
            return ResolvedPrice(
                price=average,
                source=HISTORICAL_AVERAGE_SOURCE,
                cached=True,
                fallback_used=True,
                confidence=Confidence.LOW,
                warnings=["Using historical average price (external APIs unavailable)"],
            )

        raise DataNotFoundError(symbol)
