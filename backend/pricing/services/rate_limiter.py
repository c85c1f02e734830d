"""Per-upstream admission control.

Three rolling counters per service key (burst, minute, hour). A full window
fails fast with RateLimitExceeded; the limiter never sleeps.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from .config import RateLimitConfig
from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class WindowCounter:
    """Request count within one rolling window."""
    count: int
    reset_time: float


@dataclass
class RateLimitWindows:
    """The three windows tracked for a service key."""
    burst: WindowCounter
    minute: WindowCounter
    hour: WindowCounter


class APIRateLimiter:
    """Process-local rate limiter keyed by upstream service."""

    MINUTE_SECONDS = 60.0
    HOUR_SECONDS = 3600.0

    def __init__(
        self,
        limits: Optional[Dict[str, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the limiter.

        Args:
            limits: Limits per service key; unknown keys use RateLimitConfig()
            clock: Returns the current time in epoch seconds
        """
        self._limits = dict(limits or {})
        self._clock = clock
        self._windows: Dict[str, RateLimitWindows] = {}

    def limits_for(self, service_key: str) -> RateLimitConfig:
        return self._limits.get(service_key, RateLimitConfig())

    def _fresh_windows(self, limits: RateLimitConfig, now: float) -> RateLimitWindows:
        return RateLimitWindows(
            burst=WindowCounter(0, now + limits.burst_window_seconds),
            minute=WindowCounter(0, now + self.MINUTE_SECONDS),
            hour=WindowCounter(0, now + self.HOUR_SECONDS),
        )

    def check_rate_limit(self, service_key: str) -> None:
        """Admit one request for service_key or raise.

        Raises:
            RateLimitExceeded: If any window is at its limit. No counter is
                incremented in that case.
        """
        limits = self.limits_for(service_key)
        now = self._clock()

        windows = self._windows.get(service_key)
        if windows is None:
            windows = self._fresh_windows(limits, now)
            self._windows[service_key] = windows

        # Lazily reset windows whose period has passed
        if now >= windows.burst.reset_time:
            windows.burst = WindowCounter(0, now + limits.burst_window_seconds)
        if now >= windows.minute.reset_time:
            windows.minute = WindowCounter(0, now + self.MINUTE_SECONDS)
        if now >= windows.hour.reset_time:
            windows.hour = WindowCounter(0, now + self.HOUR_SECONDS)

        if windows.burst.count >= limits.burst_limit:
            wait = windows.burst.reset_time - now
            raise RateLimitExceeded(
                f"Burst rate limit exceeded for {service_key}. "
                f"Try again in {math.ceil(wait)} seconds.",
                reset_time=datetime.utcfromtimestamp(windows.burst.reset_time),
            )

        if windows.minute.count >= limits.requests_per_minute:
            wait = windows.minute.reset_time - now
            raise RateLimitExceeded(
                f"Per-minute rate limit exceeded for {service_key}. "
                f"Try again in {math.ceil(wait)} seconds.",
                reset_time=datetime.utcfromtimestamp(windows.minute.reset_time),
            )

        if windows.hour.count >= limits.requests_per_hour:
            wait = windows.hour.reset_time - now
            raise RateLimitExceeded(
                f"Hourly rate limit exceeded for {service_key}. "
                f"Try again in {math.ceil(wait / 60)} minutes.",
                reset_time=datetime.utcfromtimestamp(windows.hour.reset_time),
            )

        windows.burst.count += 1
        windows.minute.count += 1
        windows.hour.count += 1

    def get_rate_limit_status(self, service_key: str) -> Dict[str, Dict[str, object]]:
        """Remaining admissions and reset time for each window."""
        limits = self.limits_for(service_key)
        now = self._clock()
        windows = self._windows.get(service_key) or self._fresh_windows(limits, now)

        def describe(counter: WindowCounter, limit: int) -> Dict[str, object]:
            if now >= counter.reset_time:
                remaining = limit
            else:
                remaining = max(0, limit - counter.count)
            return {
                "remaining": remaining,
                "reset_time": datetime.utcfromtimestamp(counter.reset_time).isoformat(),
            }

        return {
            "burst": describe(windows.burst, limits.burst_limit),
            "minute": describe(windows.minute, limits.requests_per_minute),
            "hour": describe(windows.hour, limits.requests_per_hour),
        }

    def reset(self, service_key: Optional[str] = None) -> None:
        """Forget counters for one service key, or all of them."""
        if service_key is None:
            self._windows.clear()
        else:
            self._windows.pop(service_key, None)
        logger.debug(f"Rate limit counters reset for {service_key or 'all services'}")
