"""Append-only price history used for trends and the historical-average fallback."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, Index

from .database import Base


class PriceHistory(Base):
    """A single observed price. Rows are never updated."""
    __tablename__ = "price_history"
    __table_args__ = (
        Index("ix_price_history_symbol_timestamp", "symbol", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    source = Column(String(50), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<PriceHistory(symbol={self.symbol}, price={self.price}, at={self.timestamp})>"

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "source": self.source,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
