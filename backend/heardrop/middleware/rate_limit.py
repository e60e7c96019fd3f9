"""
HEARDROP Backend — Rate Limiting
==================================

What:  Per-key sliding window limiter, plus the middleware that applies a
       global per-IP limit to every request.
Why:   Protects the API from abuse, and gives the password-check and
       affiliate-tracking endpoints their own tighter per-IP budgets.
How:   Tracks request timestamps per key in memory.

Algorithm: Sliding Window Counter
    1. Each key gets a list of request timestamps
    2. On each hit, remove timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise, add current timestamp and allow through

Production Upgrade Path:
    This in-memory implementation works for single-process deployments.
    Multi-worker deployments need shared state (e.g. Redis INCR with TTL).
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from heardrop.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Resolve the caller's IP.

    Behind a proxy the socket peer is the proxy, so the first entry of
    X-Forwarded-For wins, then X-Real-IP, then the socket address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class SlidingWindowLimiter:
    """
    In-memory sliding window keyed by an arbitrary string (usually an IP).

    Not shared across processes; see the module docstring.
    """

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._calls = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Record a hit for `key`.

        Returns:
            None when the hit is allowed, otherwise the number of seconds
            until the oldest hit leaves the window (the Retry-After value).
        """
        now = time.time() if now is None else now
        window_start = now - self.window_seconds

        hits = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = hits

        if len(hits) >= self.limit:
            return int(hits[0] + self.window_seconds - now) + 1

        hits.append(now)

        # Periodic cleanup of inactive keys
        self._calls += 1
        if self._calls % 1000 == 0:
            self._cleanup(window_start)
        return None

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)

    def _cleanup(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._hits.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for key in inactive:
            del self._hits[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Global per-IP limit (rate_limit_requests per rate_limit_window).

    Excluded paths:
        /health and the API docs are always reachable.

    Response on rate limit:
        HTTP 429 with a Retry-After header and the standard error body.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = SlidingWindowLimiter(
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = get_client_ip(request)
        retry_after = self.limiter.hit(client_ip)

        if retry_after is not None:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                self.limiter.limit,
                self.limiter.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
