"""Client for the Google Apps Script quote endpoint.

The endpoint takes POST {"symbols": [...]} with exchange-qualified symbols and
returns a flat JSON object mapping each symbol it knows to its price, e.g.
{"NSE:RELIANCE": 1389.5}. Unknown symbols are simply missing.
"""

import json
import logging
import math
import time
from typing import Dict, List, Optional

import aiohttp

from .errors import (
    InvalidResponseError,
    RateLimitExceeded,
    UpstreamClientError,
    UpstreamConnectionError,
    UpstreamServerError,
)

logger = logging.getLogger(__name__)


def is_valid_price(value) -> bool:
    """A usable quote is a finite positive number.

    json.loads accepts NaN and Infinity literals, and bool is an int subclass.
    """
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


class GoogleScriptClient:
    """Bulk quote fetcher. Every failure is raised as a PricingError subclass."""

    def __init__(
        self,
        api_url: str,
        auth_token: Optional[str] = None,
        service_key: str = "GOOGLE_SCRIPT",
    ):
        """Initialize the client.

        Args:
            api_url: Script deployment URL
            auth_token: Sent verbatim in the authorization header when set
            service_key: Upstream identifier recorded as the price source
        """
        self.api_url = api_url
        self.auth_token = auth_token
        self.service_key = service_key

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["authorization"] = self.auth_token
        return headers

    async def fetch_quotes(self, qualified_symbols: List[str]) -> Dict[str, float]:
        """Fetch prices for already-qualified symbols in a single request.

        Returns:
            Mapping of qualified symbol to price; values that are not finite positive numbers are dropped

        Raises:
            RateLimitExceeded: HTTP 429
            UpstreamServerError: HTTP 5xx
            UpstreamClientError: Any other non-2xx status
            InvalidResponseError: Body is not a JSON object
            UpstreamConnectionError: Transport failure
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.api_url,
                    json={"symbols": qualified_symbols},
                    headers=self._headers(),
                ) as resp:
                    status = resp.status
                    body = await resp.text()
        except aiohttp.ClientError as e:
            raise UpstreamConnectionError(
                f"Could not reach {self.service_key} quote API: {e}",
                original_error=e,
            ) from e

        if status == 429:
            raise RateLimitExceeded(f"{self.service_key} quote API returned 429 Too Many Requests")
        if 500 <= status <= 599:
            raise UpstreamServerError(f"{self.service_key} quote API error: HTTP {status}", status=status)
        if not 200 <= status <= 299:
            raise UpstreamClientError(f"{self.service_key} quote API error: HTTP {status}", status=status)

        try:
            data = json.loads(body)
        except ValueError as e:
            raise InvalidResponseError(
                f"Invalid JSON from {self.service_key} quote API",
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise InvalidResponseError(
                f"Invalid response from {self.service_key} quote API: "
                f"expected object, got {type(data).__name__}"
            )

        prices = {}
        for key, value in data.items():
            if is_valid_price(value):
                prices[key] = float(value)
            else:
                logger.debug(f"Ignoring unusable quote for {key}: {value!r}")

        logger.debug(f"Fetched {len(prices)}/{len(qualified_symbols)} quotes from {self.service_key}")
        return prices

    async def ping(self, timeout: float = 5.0) -> Dict[str, object]:
        """Reachability check for health reporting. Never raises."""
        start = time.monotonic()
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.head(self.api_url, headers=self._headers()) as resp:
                    await resp.release()
            return {"status": "up", "response_time_ms": round((time.monotonic() - start) * 1000)}
        except Exception as e:
            return {"status": "down", "error": str(e) or type(e).__name__}
