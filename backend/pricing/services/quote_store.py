"""Typed access to the quote cache and the price history log.

Neither class talks to the network. Each call opens its own short session so
concurrent lookups from a batch never share a transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import PriceCache, PriceHistory

logger = logging.getLogger(__name__)


@dataclass
class StalenessThresholds:
    """Age boundaries of the cache tiers, in seconds."""
    fresh: float = 60 * 60
    stale: float = 24 * 60 * 60
    max_age: float = 7 * 24 * 60 * 60


@dataclass
class CachedQuote:
    """A cache entry together with its staleness classification."""
    symbol: str
    price: float
    source: str
    last_updated: datetime
    age_seconds: float
    is_fresh: bool
    is_stale: bool
    is_expired: bool
    is_too_old: bool

    @property
    def tier(self) -> str:
        if self.is_fresh:
            return "fresh"
        if self.is_stale:
            return "stale"
        if self.is_too_old:
            return "too-old"
        return "expired"

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "source": self.source,
            "last_updated": self.last_updated.isoformat(),
            "age_seconds": self.age_seconds,
            "is_fresh": self.is_fresh,
            "is_stale": self.is_stale,
            "is_expired": self.is_expired,
            "tier": self.tier,
        }


def classify_age(age_seconds: float, thresholds: StalenessThresholds) -> Dict[str, bool]:
    """Map an age onto the fresh / stale / expired / too-old tiers."""
    return {
        "is_fresh": age_seconds < thresholds.fresh,
        "is_stale": thresholds.fresh <= age_seconds < thresholds.stale,
        "is_expired": age_seconds >= thresholds.stale,
        "is_too_old": age_seconds >= thresholds.max_age,
    }


class QuoteStore:
    """Symbol-keyed quote cache. Writes are upserts."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        thresholds: Optional[StalenessThresholds] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self.thresholds = thresholds or StalenessThresholds()
        self._clock = clock

    async def get(self, symbol: str) -> Optional[PriceCache]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PriceCache).where(PriceCache.symbol == symbol)
            )
            return result.scalar_one_or_none()

    async def set(self, symbol: str, price: float, source: str) -> None:
        """Insert or overwrite the entry for symbol, stamping it with now."""
        now = self._clock()
        async with self._session_factory() as session:
            try:
                await self._upsert(session, symbol, price, source, now)
                await session.commit()
            except IntegrityError:
                # Lost an insert race with another writer; the row exists now
                await session.rollback()
                await self._upsert(session, symbol, price, source, now)
                await session.commit()

    @staticmethod
    async def _upsert(
        session: AsyncSession,
        symbol: str,
        price: float,
        source: str,
        now: datetime,
    ) -> None:
        result = await session.execute(
            select(PriceCache).where(PriceCache.symbol == symbol)
        )
        entry = result.scalar_one_or_none()
        if entry:
            entry.price = price
            entry.source = source
            entry.last_updated = now
        else:
            session.add(PriceCache(symbol=symbol, price=price, source=source, last_updated=now))
        await session.flush()

    async def get_with_age(self, symbol: str) -> Optional[CachedQuote]:
        entry = await self.get(symbol)
        if entry is None:
            return None
        return self._describe(entry, self._clock())

    def _describe(self, entry: PriceCache, now: datetime) -> CachedQuote:
        age = (now - entry.last_updated).total_seconds()
        return CachedQuote(
            symbol=entry.symbol,
            price=entry.price,
            source=entry.source,
            last_updated=entry.last_updated,
            age_seconds=age,
            **classify_age(age, self.thresholds),
        )

    async def tracked_symbols(self) -> List[str]:
        """All symbols that currently have a cache entry."""
        async with self._session_factory() as session:
            result = await session.execute(select(PriceCache.symbol).order_by(PriceCache.symbol))
            return list(result.scalars().all())

    async def delete_all(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(PriceCache))
            await session.commit()
            return result.rowcount or 0

    async def delete_except(self, keep_symbols: Iterable[str]) -> int:
        """Delete every entry whose symbol is not in keep_symbols."""
        keep = set(keep_symbols)
        async with self._session_factory() as session:
            stmt = delete(PriceCache)
            if keep:
                stmt = stmt.where(PriceCache.symbol.not_in(keep))
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def stats(self) -> Dict[str, object]:
        """Counts per staleness tier plus the oldest and newest update times."""
        now = self._clock()
        fresh_cutoff = now - timedelta(seconds=self.thresholds.fresh)
        stale_cutoff = now - timedelta(seconds=self.thresholds.stale)

        async with self._session_factory() as session:
            count, oldest, newest = (await session.execute(
                select(
                    func.count(PriceCache.id),
                    func.min(PriceCache.last_updated),
                    func.max(PriceCache.last_updated),
                )
            )).one()
            fresh_count = (await session.execute(
                select(func.count(PriceCache.id)).where(PriceCache.last_updated > fresh_cutoff)
            )).scalar_one()
            expired_count = (await session.execute(
                select(func.count(PriceCache.id)).where(PriceCache.last_updated <= stale_cutoff)
            )).scalar_one()

        return {
            "count": count,
            "fresh_count": fresh_count,
            "stale_count": count - fresh_count - expired_count,
            "expired_count": expired_count,
            "oldest_entry": oldest.isoformat() if oldest else None,
            "newest_entry": newest.isoformat() if newest else None,
        }


class PriceHistoryLog:
    """Append-only log of observed prices."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def append(
        self,
        symbol: str,
        price: float,
        source: str,
        timestamp: Optional[datetime] = None,
    ) -> None:
        async with self._session_factory() as session:
            session.add(PriceHistory(
                symbol=symbol,
                price=price,
                source=source,
                timestamp=timestamp or self._clock(),
            ))
            await session.commit()

    async def query_recent(
        self,
        symbol: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[PriceHistory]:
        """History records for symbol, newest first."""
        stmt = select(PriceHistory).where(PriceHistory.symbol == symbol)
        if since is not None:
            stmt = stmt.where(PriceHistory.timestamp >= since)
        if until is not None:
            stmt = stmt.where(PriceHistory.timestamp <= until)
        stmt = stmt.order_by(PriceHistory.timestamp.desc(), PriceHistory.id.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def average_since(self, symbol: str, since: datetime, limit: int = 100) -> Optional[float]:
        """Mean of the most recent `limit` prices at or after `since`; None when there are none."""
        records = await self.query_recent(symbol, since=since, limit=limit)
        if not records:
            return None
        return sum(r.price for r in records) / len(records)

    async def prune(self, before: datetime) -> int:
        """Delete records older than `before`. Returns the number removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PriceHistory).where(PriceHistory.timestamp < before)
            )
            await session.commit()
            return result.rowcount or 0

    async def stats(self) -> Dict[str, object]:
        async with self._session_factory() as session:
            count, oldest, newest = (await session.execute(
                select(
                    func.count(PriceHistory.id),
                    func.min(PriceHistory.timestamp),
                    func.max(PriceHistory.timestamp),
                )
            )).one()
            unique_symbols = (await session.execute(
                select(func.count(func.distinct(PriceHistory.symbol)))
            )).scalar_one()

        return {
            "count": count,
            "oldest_entry": oldest.isoformat() if oldest else None,
            "newest_entry": newest.isoformat() if newest else None,
            "unique_symbols": unique_symbols,
        }
