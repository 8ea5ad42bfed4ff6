"""Rate limiting dependency for FastAPI routes.

This module wires the token bucket limiter into the HTTP layer.

- The limiter is a process-scoped object owned by the application
  (``app.state.rate_limiter``), created in the app factory and compacted by a
  background task started in the lifespan.
- Clients are identified by their connection-level address.
"""

from __future__ import annotations

import logging

from fastapi import Request

from kvdb.adapters.rate_limit.base import AbstractRateLimiter
from kvdb.adapters.rate_limit.in_memory import InMemoryTokenBucketRateLimiter
from kvdb.core.config import RateLimitSettings
from kvdb.core.errors import RateLimitedAppError
from kvdb.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def build_rate_limiter(rate_limit_settings: RateLimitSettings) -> AbstractRateLimiter:
    """Create the limiter for one application instance."""

    return InMemoryTokenBucketRateLimiter(
        rate_per_second=rate_limit_settings.per_second,
        burst_size=rate_limit_settings.burst_size,
    )


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    return request.app.state.rate_limiter


def build_rate_limit_key(request: Request) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: Namespaced limiter key.
    """

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def compact_rate_limiter(limiter: AbstractRateLimiter) -> int:
    """Run one compaction pass and log how many idle buckets were dropped."""

    removed = limiter.compact()
    logger.debug("rate_limit.compacted", extra={"removed": removed})
    return removed


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing per-client rate limits.

    Consumes one token from the caller's bucket. When the bucket is empty the
    request is rejected with HTTP 429.

    Raises:
        RateLimitedAppError: When the client has no tokens left.
    """

    rate_limit_settings: RateLimitSettings = request.app.state.settings.rate_limit
    if not rate_limit_settings.enabled:
        return

    limiter = get_rate_limiter(request)
    key = build_rate_limit_key(request)

    result = limiter.consume(key)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": hash_for_log(key),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return

    retry_after = result.retry_after_seconds or 1
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": hash_for_log(key),
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after_s": retry_after,
        },
    )

    details = None
    if rate_limit_settings.include_headers:
        details = {
            "retry_after": retry_after,
            "limit": result.limit,
            "remaining": result.remaining,
        }

    raise RateLimitedAppError(
        code="rate_limited",
        message="Rate limit exceeded",
        details=details,
    )
