# Business Logic Services

from .errors import (
    PricingError,
    RateLimitExceeded,
    APITimeoutError,
    UpstreamServerError,
    UpstreamConnectionError,
    UpstreamClientError,
    InvalidResponseError,
    SymbolNotFoundError,
    MaxRetriesExceeded,
    DataNotFoundError,
    describe_error,
)
from .config import (
    ConfigService,
    config_service,
    ConfigValidationException,
    ConfigValidationError,
    PricingSettings,
    RateLimitConfig,
)
from .rate_limiter import APIRateLimiter
from .resilience import (
    RetryPolicy,
    execute_with_retry,
    execute_with_timeout,
    fetch_with_resilience,
)
from .quote_store import (
    QuoteStore,
    PriceHistoryLog,
    CachedQuote,
    StalenessThresholds,
)
from .fallback import (
    FallbackResolver,
    ResolvedPrice,
    Confidence,
)
from .symbols import format_symbol
from .upstream import GoogleScriptClient
from .price_service import (
    PriceService,
    BatchPriceResult,
    RefreshResult,
)
from .background_refresh import BackgroundPriceRefreshService
from .logging_service import configure_logging

__all__ = [
    # Errors
    "PricingError",
    "RateLimitExceeded",
    "APITimeoutError",
    "UpstreamServerError",
    "UpstreamConnectionError",
    "UpstreamClientError",
    "InvalidResponseError",
    "SymbolNotFoundError",
    "MaxRetriesExceeded",
    "DataNotFoundError",
    "describe_error",
    # Config
    "ConfigService",
    "config_service",
    "ConfigValidationException",
    "ConfigValidationError",
    "PricingSettings",
    "RateLimitConfig",
    # Rate limiting / retry
    "APIRateLimiter",
    "RetryPolicy",
    "execute_with_retry",
    "execute_with_timeout",
    "fetch_with_resilience",
    # Stores
    "QuoteStore",
    "PriceHistoryLog",
    "CachedQuote",
    "StalenessThresholds",
    # Fallback
    "FallbackResolver",
    "ResolvedPrice",
    "Confidence",
    # Upstream
    "format_symbol",
    "GoogleScriptClient",
    # Facade
    "PriceService",
    "BatchPriceResult",
    "RefreshResult",
    "BackgroundPriceRefreshService",
    # Logging
    "configure_logging",
]
