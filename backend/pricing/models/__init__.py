# Database Models

from .database import Base, engine, async_session_maker, create_session_factory, init_db
from .price_cache import PriceCache
from .price_history import PriceHistory

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "create_session_factory",
    "init_db",
    "PriceCache",
    "PriceHistory",
]
