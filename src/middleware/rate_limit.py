"""Simple in-memory sliding-window rate limiter for the public read API.

Sufficient for a single-instance deployment.  Health probes are never
limited so an orchestrator's liveness checks cannot lock themselves out.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.config import Settings, get_settings

EXEMPT_PATHS: frozenset[str] = frozenset({"/health"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding window rate limiter."""

    def __init__(
        self, app: Any, settings: Settings | None = None, window_seconds: int = 60
    ) -> None:
        super().__init__(app)
        s = settings or get_settings()
        self._max_requests = s.rate_limit_per_minute
        self._window_seconds = window_seconds
        # ip -> request timestamps, oldest first
        self._requests: dict[str, deque[float]] = defaultdict(deque)

    def _client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _cleanup(self, ip: str, now: float) -> None:
        cutoff = now - self._window_seconds
        hits = self._requests[ip]
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._requests[ip]

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        ip = self._client_ip(request)
        now = time.monotonic()
        self._cleanup(ip, now)
        hits = self._requests[ip]

        if len(hits) >= self._max_requests:
            retry_after = int(self._window_seconds - (now - hits[0]))
            return Response(
                content='{"error":"Rate limit exceeded"}',
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(max(retry_after, 1))},
            )

        hits.append(now)

        response = await call_next(request)

        remaining = self._max_requests - len(hits)
        response.headers["X-RateLimit-Limit"] = str(self._max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(remaining, 0))

        return response
