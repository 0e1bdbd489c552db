"""
Buprenorphine Pharmacy Locator — In-Memory Sliding Window Rate Limiter

One limit for every anonymous client, keyed by client IP
(``X-Forwarded-For`` first hop when behind a proxy).  The limit is read
from ``BPL_RATE_LIMIT`` (requests per 60-second window, default 60).

Response headers on every limited response:
    X-RateLimit-Limit     — max requests per window
    X-RateLimit-Remaining — requests left
    X-RateLimit-Reset     — seconds until window resets

Returns 429 Too Many Requests with Retry-After header when exceeded.
"""

from __future__ import annotations

import logging
import os
import threading
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = int(os.environ.get("BPL_RATE_LIMIT", "60"))
WINDOW_SECONDS = 60

# Paths never limited (load balancer probes)
EXEMPT_PATHS = frozenset({"/api/health", "/favicon.ico"})

# ---------------------------------------------------------------------------
# Sliding window store
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_store: dict[str, list[float]] = {}  # key -> list of request timestamps
_last_cleanup = time.time()
_CLEANUP_INTERVAL = 60  # seconds between cleanups


def _get_client_key(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    client = request.client
    return f"ip:{client.host}" if client else "ip:unknown"


def _cleanup_expired(now: float) -> None:
    """Drop idle keys; caller holds the lock."""
    global _last_cleanup
    if now - _last_cleanup < _CLEANUP_INTERVAL:
        return
    _last_cleanup = now

    cutoff = now - WINDOW_SECONDS
    for key in [k for k, ts in _store.items() if not ts or ts[-1] <= cutoff]:
        del _store[key]


def check_rate_limit(client_key: str, limit: int) -> tuple[bool, int, int, int]:
    """
    Check if a request is allowed, recording it when it is.

    Returns:
        (allowed, limit, remaining, reset_seconds)
    """
    now = time.time()
    cutoff = now - WINDOW_SECONDS

    with _lock:
        _cleanup_expired(now)

        timestamps = [t for t in _store.get(client_key, []) if t > cutoff]
        reset_seconds = int(WINDOW_SECONDS - (now - timestamps[0])) if timestamps else WINDOW_SECONDS

        if len(timestamps) >= limit:
            _store[client_key] = timestamps
            return False, limit, 0, reset_seconds

        timestamps.append(now)
        _store[client_key] = timestamps
        return True, limit, max(0, limit - len(timestamps)), reset_seconds


def reset_rate_limits() -> None:
    """Clear all rate limit state."""
    with _lock:
        _store.clear()
    logger.info("Rate limiter: all limits reset")


# ---------------------------------------------------------------------------
# FastAPI middleware
# ---------------------------------------------------------------------------


async def rate_limit_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    allowed, max_limit, remaining, reset_seconds = check_rate_limit(
        _get_client_key(request), DEFAULT_LIMIT
    )

    if not allowed:
        logger.info("Rate limit exceeded on %s", request.url.path)
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Too many requests. Please wait a moment.",
                "retry_after": reset_seconds,
            },
            headers={
                "X-RateLimit-Limit": str(max_limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(reset_seconds),
                "Retry-After": str(reset_seconds),
            },
        )

    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(max_limit)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    response.headers["X-RateLimit-Reset"] = str(reset_seconds)
    return response
