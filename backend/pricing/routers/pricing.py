"""Pricing subsystem router: health and background refresh control."""

from fastapi import APIRouter, Depends

from ..services import PriceService, BackgroundPriceRefreshService
from .dependencies import get_price_service, get_refresh_service

router = APIRouter()


@router.get("/health")
async def pricing_health(
    service: PriceService = Depends(get_price_service),
    refresh_service: BackgroundPriceRefreshService = Depends(get_refresh_service),
):
    """Upstream, database and background refresh health."""
    health = await service.health_check()
    health["background_refresh"] = await refresh_service.health_check()
    return health


@router.get("/refresh/status")
async def refresh_status(
    refresh_service: BackgroundPriceRefreshService = Depends(get_refresh_service),
):
    """Background refresh status and statistics."""
    return {
        **refresh_service.get_status(),
        "statistics": await refresh_service.get_refresh_statistics(),
    }


@router.post("/refresh")
async def refresh_all(
    refresh_service: BackgroundPriceRefreshService = Depends(get_refresh_service),
):
    """Refresh every tracked symbol now."""
    result = await refresh_service.refresh_all()
    if result is None:
        return {"message": "Refresh already in progress", "skipped": True}
    return result.to_dict()
