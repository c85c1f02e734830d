"""Request-scoped access to the services created in the app lifespan."""

from fastapi import Request

from ..services import PriceService, BackgroundPriceRefreshService


def get_price_service(request: Request) -> PriceService:
    return request.app.state.price_service


def get_refresh_service(request: Request) -> BackgroundPriceRefreshService:
    return request.app.state.refresh_service
