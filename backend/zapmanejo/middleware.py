# ---------------------------------------------------------------------------
# middleware.py
#
# Request-path middleware for the ZapManejo API.
#
# - BodySizeLimitMiddleware: answers 413 when the declared Content-Length is
#   above the configured limit. Chunked bodies carry no length and pass.
# - RateLimitMiddleware: per-client sliding one-minute window held in process
#   memory, so limits are per instance. Clients are identified by a hash of
#   their bearer token, otherwise by socket peer address.
# - RequestLoggingMiddleware: one structured "request" log line per call,
#   plus `x-request-id` / `x-server-timing-ms` response headers.
#
# Logging problems are reported at debug level and never fail a request.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from . import config
from .utils import sha256_hex

logger = logging.getLogger(__name__)


def _remote_addr(request: Request) -> str:
    """Client address for logs (first X-Forwarded-For hop when present)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return _peer_addr(request)


def _peer_addr(request: Request) -> str:
    """Address of the socket peer; clients cannot forge it with headers."""
    return request.client.host if request.client else "unknown"


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """413 for bodies whose Content-Length exceeds `max_body_bytes`."""

    def __init__(self, app, max_body_bytes: Optional[int] = None):
        super().__init__(app)
        self.max_body_bytes = config.max_body_bytes() if max_body_bytes is None else max_body_bytes

    async def dispatch(self, request: Request, call_next: Callable):
        length = _declared_length(request)
        if length is not None and length > self.max_body_bytes:
            return JSONResponse(
                {"detail": f"Request body exceeds {self.max_body_bytes} bytes"},
                status_code=413,
            )
        return await call_next(request)


class _SlidingWindowLimiter:
    """Counts hits per key over the trailing `window` seconds.

    Keys with no hit inside the window are dropped on a periodic sweep, so
    memory is bounded by the number of clients active in the last window.
    """

    def __init__(self, window: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        stale = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= self.window]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    def hit(self, key: str, limit: int) -> float:
        """Record a hit; return 0 if allowed, else seconds until a slot frees up."""
        now = self._clock()
        if now - self._last_sweep >= self.window:
            self._sweep(now)

        hits = self._hits[key]
        while hits and now - hits[0] >= self.window:
            hits.popleft()

        if len(hits) >= limit:
            return self.window - (now - hits[0])
        hits.append(now)
        return 0.0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """429 once a client exceeds `limit_per_minute` requests.

    Clients are keyed by bearer token hash, else by socket peer address.
    X-Forwarded-For is not trusted here.
    """

    def __init__(self, app, limit_per_minute: Optional[int] = None):
        super().__init__(app)
        self.limit_per_minute = config.rate_limit_rpm() if limit_per_minute is None else limit_per_minute
        self._limiter = _SlidingWindowLimiter()

    @staticmethod
    def client_key(request: Request) -> str:
        scheme, _, token = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return "jwt:" + sha256_hex(token.strip())
        return "ip:" + _peer_addr(request)

    async def dispatch(self, request: Request, call_next: Callable):
        retry_after = self._limiter.hit(self.client_key(request), self.limit_per_minute)
        if retry_after:
            return JSONResponse(
                {"detail": "Rate limit exceeded"},
                status_code=429,
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        try:
            returned = response.headers.get("x-returned-items")
            logger.info(
                "request",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_ms": round(elapsed_ms, 2),
                    "user_id": getattr(request.state, "user_id", None),
                    "client": _remote_addr(request),
                    "returned_items": int(returned) if returned and returned.isdigit() else None,
                },
            )
        except Exception:
            logger.debug("request logging failed", exc_info=True)

        response.headers["x-request-id"] = request_id
        response.headers["x-server-timing-ms"] = str(int(elapsed_ms))
        return response
