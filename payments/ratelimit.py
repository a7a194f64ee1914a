"""Pluggable request rate limiting for the client API."""

import logging
import time
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import cache
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class RateLimiter:
    """Interface: count one hit for ``key`` inside a window of ``window`` seconds."""

    def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        raise NotImplementedError


class CacheRateLimiter(RateLimiter):
    """Fixed-window counter stored in the Django cache, so it is shared by every worker using the same backend."""

    prefix = "ratelimit"

    def __init__(self, backend=None):
        self.cache = backend or cache

    def hit(self, key, limit, window):
        now = int(time.time())
        bucket = now - now % window
        cache_key = f"{self.prefix}:{key}:{bucket}"
        if self.cache.add(cache_key, 1, timeout=window):
            count = 1
        else:
            try:
                count = self.cache.incr(cache_key)
            except ValueError:
                # expired between add() and incr()
                self.cache.set(cache_key, 1, timeout=window)
                count = 1
        retry_after = bucket + window - now
        return RateLimitResult(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            retry_after=retry_after,
        )


def get_rate_limiter() -> RateLimiter:
    path = settings.PAYMENTS.get("RATE_LIMITER", "payments.ratelimit.CacheRateLimiter")
    return import_string(path)()
