"""Per-caller rate limiting.

In-memory sliding window per (caller, group). The public webhook receiver
has its own, tighter group; authenticated API traffic is split into writes
and reads. Every limited response carries ``X-RateLimit-*`` headers and a
rejected one is a 429 in the usual error shape.

Counters live in the middleware instance, so each API process limits on
its own.
"""

import threading
import time
from typing import NamedTuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.middleware import error_body

UNLIMITED_PATHS = frozenset({"/api/health", "/api/v1/health", "/api/health/ready"})
MAX_TRACKED_KEYS = 50_000


class Limit(NamedTuple):
    max_requests: int
    window_seconds: int


class Decision(NamedTuple):
    allowed: bool
    remaining: int
    retry_after: float


def classify_request(method: str, path: str) -> str:
    if path.startswith("/api/webhooks/"):
        return "webhook"
    if method in ("POST", "PUT", "PATCH", "DELETE"):
        return "write"
    return "read"


class SlidingWindowCounter:
    """Two-bucket sliding window: the previous window's count is weighted by
    how much of it still overlaps the current one."""

    def __init__(self, max_keys: int = MAX_TRACKED_KEYS):
        self._lock = threading.Lock()
        self._windows: dict[tuple[str, str], tuple[int, int, float]] = {}
        self._max_keys = max_keys

    def hit(self, key: str, group: str, limit: Limit, now: float | None = None) -> Decision:
        now = time.monotonic() if now is None else now
        window = limit.window_seconds
        bucket = (key, group)

        with self._lock:
            current, previous, started = self._windows.get(bucket, (0, 0, now))
            elapsed = now - started
            if elapsed >= window:
                previous = current if elapsed < 2 * window else 0
                current, started, elapsed = 0, now, 0.0

            estimated = previous * (1 - elapsed / window) + current
            if estimated >= limit.max_requests:
                self._windows[bucket] = (current, previous, started)
                return Decision(False, 0, window - elapsed)

            self._windows[bucket] = (current + 1, previous, started)
            self._evict_oldest()
            return Decision(True, max(0, limit.max_requests - int(estimated) - 1), 0.0)

    def _evict_oldest(self) -> None:
        if len(self._windows) <= self._max_keys:
            return
        by_age = sorted(self._windows, key=lambda k: self._windows[k][2])
        for key in by_age[: max(1, self._max_keys // 5)]:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects callers over their group's limit with 429 and ``Retry-After``.

    Callers are identified by the connecting address; forwarded headers are
    not trusted for this.
    """

    def __init__(self, app, limits: dict[str, Limit]):
        super().__init__(app)
        self.limits = limits
        self.counter = SlidingWindowCounter()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        group = classify_request(request.method, path)
        limit = self.limits.get(group)
        if limit is None or path in UNLIMITED_PATHS:
            return await call_next(request)

        caller = request.client.host if request.client else "unknown"
        decision = self.counter.hit(caller, group, limit)
        headers = {
            "X-RateLimit-Limit": str(limit.max_requests),
            "X-RateLimit-Remaining": str(decision.remaining),
        }

        if not decision.allowed:
            retry_after = max(1, int(decision.retry_after))
            return JSONResponse(
                status_code=429,
                content=error_body(request, "Rate limit exceeded", "rate_limited"),
                headers={**headers, "Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
