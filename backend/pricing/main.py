"""Pricing FastAPI Application.

Serves cached, rate-limited, fallback-aware prices for portfolio holdings and
keeps them fresh with a background refresh task.
"""

import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .models import init_db, create_session_factory
from .routers import health, prices, pricing
from .services import (
    PriceService,
    BackgroundPriceRefreshService,
    config_service,
    configure_logging,
    ConfigValidationException,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Validate configuration
    try:
        config_service.load_and_validate()
    except ConfigValidationException as e:
        print(f"FATAL: {e}")
        print("Server cannot start with invalid configuration.")
        sys.exit(1)

    configure_logging(
        level=config_service.get("logging.level", "INFO"),
        fmt=config_service.get("logging.format"),
        log_file=config_service.get("logging.file"),
    )

    # Initialize database
    db_engine, session_factory = None, None
    database_url = config_service.get("database.url")
    if database_url:
        db_engine, session_factory = create_session_factory(database_url)
    await init_db(db_engine)
    logger.info("Database initialized")

    settings = config_service.pricing_settings()
    price_service = PriceService(settings, session_factory=session_factory)
    refresh_service = BackgroundPriceRefreshService(price_service)
    app.state.price_service = price_service
    app.state.refresh_service = refresh_service

    await refresh_service.start(settings.refresh_interval_seconds)

    yield

    # Shutdown
    await refresh_service.stop()
    if db_engine is not None:
        await db_engine.dispose()
    logger.info("Graceful shutdown complete")


app = FastAPI(
    title="Pricing API",
    description="Portfolio price fetching, caching and fallback API",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(prices.router, prefix="/api/prices", tags=["Prices"])
app.include_router(pricing.router, prefix="/api/pricing", tags=["Pricing"])


@app.get("/")
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Pricing API", "docs": "/docs"}
