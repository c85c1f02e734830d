# API Routers

from . import health, prices, pricing

__all__ = ["health", "prices", "pricing"]
