"""Security headers middleware.

Adds content-type, frame and referrer policies to every response; HSTS only
outside development so local HTTP clients are not pinned to HTTPS.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.config import Settings, get_settings

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_HEADER = ("Strict-Transport-Security", "max-age=63072000; includeSubDomains")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Any, settings: Settings | None = None) -> None:
        super().__init__(app)
        s = settings or get_settings()
        self._headers = dict(SECURITY_HEADERS)
        if s.environment != "development":
            self._headers[HSTS_HEADER[0]] = HSTS_HEADER[1]

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        # Swagger UI needs scripts and styles from its CDN
        if request.url.path.startswith(("/docs", "/redoc")):
            return response
        for header, value in self._headers.items():
            response.headers.setdefault(header, value)
        return response
