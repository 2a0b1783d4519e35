"""HTTP middleware: access logging and security headers."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

ACCESS_LOGGER_NAME = "formpanel.access"

access_logger = logging.getLogger(ACCESS_LOGGER_NAME)


def configure_access_log(path: Path) -> logging.Handler:
    """Append access log lines to ``path`` and keep them out of the root logger."""

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False
    return handler


def _combined_line(request: Request, status_code: int, size: str) -> str:
    client = request.client.host if request.client else "-"
    timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    version = request.scope.get("http_version", "1.1")
    referer = request.headers.get("referer", "-")
    agent = request.headers.get("user-agent", "-")
    return (
        f'{client} - - [{timestamp}] "{request.method} {target} HTTP/{version}" '
        f'{status_code} {size} "{referer}" "{agent}"'
    )


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Write one combined-format line per request to the access logger."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            access_logger.info(_combined_line(request, 500, "-"))
            raise
        access_logger.info(_combined_line(request, response.status_code, response.headers.get("content-length", "-")))
        logging.getLogger("formpanel.web").debug(
            "%s %s completed in %.1f ms",
            request.method,
            request.url.path,
            (time.perf_counter() - started) * 1000,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add browser hardening headers to every response."""

    def __init__(self, app, *, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


__all__ = [
    "ACCESS_LOGGER_NAME",
    "AccessLogMiddleware",
    "SecurityHeadersMiddleware",
    "configure_access_log",
]
