from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("app.request")

# Provider URL checks hit these constantly.
QUIET_METHODS = frozenset({"HEAD", "OPTIONS"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        method = request.method
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - started
            path = resolve_http_path_label(request)
            observe_http_request(method=method, path=path, status=500, duration=elapsed)
            logger.error(
                "http.error",
                exc_info=True,
                extra={"method": method, "path": path, "status_code": 500, "duration_ms": round(elapsed * 1000, 2)},
            )
            raise

        elapsed = time.perf_counter() - started
        path = resolve_http_path_label(request)
        observe_http_request(method=method, path=path, status=response.status_code, duration=elapsed)
        fields = {
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(elapsed * 1000, 2),
        }
        if method in QUIET_METHODS:
            logger.debug("http.request", extra=fields)
        elif response.status_code >= 500:
            logger.error("http.request", extra=fields)
        elif response.status_code >= 400:
            logger.warning("http.request", extra=fields)
        else:
            logger.info("http.request", extra=fields)
        return response
