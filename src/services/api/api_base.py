"""Shared building blocks for the catalog API client.

This module provides:
- Rate limiting with a moving window approach
- Date helpers used when converting catalog payloads
"""

import asyncio
import re
import time
from typing import Any

_YEAR_PREFIX_RE = re.compile(r"^(\d{4})")
MIN_RELEASE_YEAR = 1900


class EnhancedRateLimiter:
    """Rate limiter using a moving window over recent call timestamps.

    Attributes:
        requests_per_window: Maximum number of requests allowed in the time window
        window_seconds: Size of the time window in seconds
        call_times: Monotonic timestamps of calls inside the current window
        lock: Asyncio lock serializing acquisitions

    """

    def __init__(self, requests_per_window: int, window_seconds: float) -> None:
        """Initialize the rate limiter.

        Args:
            requests_per_window: Maximum requests allowed in the time window
            window_seconds: Duration of the time window in seconds

        Raises:
            ValueError: If parameters are not positive numbers

        """
        if requests_per_window <= 0:
            msg = "requests_per_window must be a positive integer"
            raise ValueError(msg)
        if window_seconds <= 0:
            msg = "window_seconds must be a positive number"
            raise ValueError(msg)

        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.call_times: list[float] = []
        self.lock = asyncio.Lock()
        self.total_requests = 0
        self.total_wait_time = 0.0

    async def acquire(self) -> float:
        """Wait until a request slot is free and claim it.

        Returns:
            float: Seconds spent waiting

        """
        async with self.lock:
            wait_time = await self._wait_if_needed()
            self.call_times.append(time.monotonic())
            self.total_requests += 1
            self.total_wait_time += wait_time
            return wait_time

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        self.call_times = [t for t in self.call_times if t > cutoff]

    async def _wait_if_needed(self) -> float:
        now = time.monotonic()
        self._prune(now)
        if len(self.call_times) < self.requests_per_window:
            return 0.0

        wait_time = max(0.0, self.call_times[0] + self.window_seconds - now)
        if wait_time > 0:
            # small buffer so the oldest call has surely left the window
            wait_time += 0.01
            await asyncio.sleep(wait_time)
            self._prune(time.monotonic())
        return wait_time

    def get_stats(self) -> dict[str, Any]:
        """Get current rate limiter statistics.

        Returns:
            Dictionary containing current stats and configuration

        """
        self._prune(time.monotonic())
        in_window = len(self.call_times)
        return {
            "requests_per_window": self.requests_per_window,
            "window_seconds": self.window_seconds,
            "current_calls_in_window": in_window,
            "available_capacity": max(0, self.requests_per_window - in_window),
            "total_requests": self.total_requests,
            "avg_wait_time": self.total_wait_time / max(1, self.total_requests),
        }


def extract_year(date_str: str | None) -> int | None:
    """Extract a plausible release year from an ISO-like date string.

    Args:
        date_str: Date such as "2009-06-30" or "2009"

    Returns:
        The year, or None when missing or implausible

    """
    if not date_str:
        return None
    if match := _YEAR_PREFIX_RE.match(date_str.strip()):
        year = int(match[1])
        if year >= MIN_RELEASE_YEAR:
            return year
    return None
