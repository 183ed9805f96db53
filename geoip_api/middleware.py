import os
import time
import uuid
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging_config import trace_id_var

logger = logging.getLogger("geoip")

LOG_EXCLUDE_PATHS = set(os.getenv("LOG_EXCLUDE_PATHS", "/healthz,/metrics").split(","))


class TracingMiddleware(BaseHTTPMiddleware):
    """ASGI middleware for request tracing and structured logging"""

    def __init__(self, app: ASGIApp, exclude_paths=None):
        super().__init__(app)
        self.exclude_paths = exclude_paths if exclude_paths is not None else LOG_EXCLUDE_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = trace_id_var.set(trace_id)

        client_ip = request.client.host if request.client else "unknown"
        start_time = time.time()

        try:
            response = await call_next(request)
            latency_ms = round((time.time() - start_time) * 1000, 2)
            self._log_request(request.method, request.url.path, response.status_code,
                              latency_ms, client_ip)
            response.headers["X-Request-ID"] = trace_id
            return response

        except Exception as e:
            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.error(f"Request failed: {str(e)}", extra={
                "method": request.method,
                "path": request.url.path,
                "status": 500,
                "latency_ms": latency_ms,
                "client_ip": client_ip,
            })
            raise
        finally:
            trace_id_var.reset(token)

    def _log_request(self, method: str, path: str, status: int, latency_ms: float,
                     client_ip: str):
        if path in self.exclude_paths:
            return

        if status >= 400:
            log_level = logging.ERROR if status >= 500 else logging.WARNING
        else:
            log_level = logging.INFO
        logger.log(log_level, "HTTP Request", extra={
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
            "client_ip": client_ip,
        })
