"""Prices API router.

Provides endpoints for:
- Single and batch price lookups
- Cache statistics, clearing and orphan cleanup
- Price history and trend per symbol
- Manual refresh of specific symbols
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..services import (
    PriceService,
    BackgroundPriceRefreshService,
    DataNotFoundError,
    describe_error,
)
from .dependencies import get_price_service, get_refresh_service

router = APIRouter()


class BatchPriceRequest(BaseModel):
    """Request for a batch price lookup."""
    symbols: List[str] = Field(..., min_length=1, max_length=50)


class RefreshRequest(BaseModel):
    """Request to refresh specific symbols."""
    symbols: List[str] = Field(..., min_length=1)


class OrphanCleanupRequest(BaseModel):
    """Symbols still held; everything else is removed from the cache."""
    active_symbols: Optional[List[str]] = None


class HistoryCleanupRequest(BaseModel):
    """Retention for price history cleanup."""
    days_to_keep: int = Field(365, ge=1)


class ResolvedPriceResponse(BaseModel):
    """Resolved price response."""
    symbol: str
    price: float
    source: str
    cached: bool
    fallback_used: bool
    confidence: str
    warnings: List[str]
    age_seconds: Optional[float]


@router.get("/cache")
async def get_cache_stats(
    enhanced: bool = False,
    service: PriceService = Depends(get_price_service),
) -> Dict[str, Any]:
    """Get quote cache statistics, optionally with price history stats."""
    if enhanced:
        return await service.get_enhanced_cache_stats()
    return await service.get_cache_stats()


@router.delete("/cache")
async def clear_cache(service: PriceService = Depends(get_price_service)):
    """Delete every cached price."""
    deleted = await service.clear_cache()
    return {"message": "All caches cleared successfully", "deleted": deleted}


@router.post("/cache/cleanup-orphans")
async def cleanup_orphans(
    request: OrphanCleanupRequest,
    service: PriceService = Depends(get_price_service),
):
    """Remove cache entries for symbols no longer held."""
    try:
        deleted = await service.cleanup_orphaned_cache_entries(request.active_symbols)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"deleted": deleted}


@router.post("/history/cleanup")
async def cleanup_history(
    request: HistoryCleanupRequest,
    service: PriceService = Depends(get_price_service),
):
    """Prune price history older than the retention period."""
    deleted = await service.cleanup_price_history(request.days_to_keep)
    return {"deleted": deleted}


@router.post("/batch")
async def batch_get_prices(
    request: BatchPriceRequest,
    service: PriceService = Depends(get_price_service),
):
    """Get prices for several symbols with one upstream request."""
    results = await service.batch_get_prices(request.symbols)
    return {"results": [r.to_dict() for r in results]}


@router.post("/refresh")
async def refresh_symbols(
    request: RefreshRequest,
    refresh_service: BackgroundPriceRefreshService = Depends(get_refresh_service),
):
    """Manually refresh prices for the given symbols."""
    result = await refresh_service.refresh_specific_symbols(request.symbols)
    return result.to_dict()


@router.get("/{symbol}", response_model=ResolvedPriceResponse)
async def get_price(
    symbol: str,
    force_refresh: bool = False,
    service: PriceService = Depends(get_price_service),
):
    """Get the best available price for a symbol."""
    try:
        resolved = await service.get_price_with_fallback(symbol, force_refresh=force_refresh)
    except DataNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={**e.to_dict(), **describe_error(e, symbol)},
        )
    return {"symbol": symbol, **resolved.to_dict()}


@router.get("/{symbol}/history")
async def get_price_history(
    symbol: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    service: PriceService = Depends(get_price_service),
):
    """Get recorded prices for a symbol, newest first."""
    history = await service.get_price_history(symbol, start=start, end=end, limit=limit)
    return {"symbol": symbol, "history": history}


@router.get("/{symbol}/trend")
async def get_price_trend(
    symbol: str,
    days: int = Query(30, ge=1, le=365),
    service: PriceService = Depends(get_price_service),
):
    """Get price change over the last `days` days."""
    trend = await service.get_price_trend(symbol, days=days)
    return {"symbol": symbol, **trend}
