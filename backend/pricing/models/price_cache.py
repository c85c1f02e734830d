"""Quote cache model: one row per symbol, overwritten on every successful fetch."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime

from .database import Base


class PriceCache(Base):
    """Latest known price for a symbol."""
    __tablename__ = "price_cache"

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(100), nullable=False, unique=True, index=True)
    price = Column(Float, nullable=False)
    source = Column(String(50), nullable=False)  # upstream service key

    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<PriceCache(symbol={self.symbol}, price={self.price}, source={self.source})>"

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "source": self.source,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
