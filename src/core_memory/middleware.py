from __future__ import annotations

import asyncio
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from .logging import logger
from .metrics import MetricsRegistry

__all__ = ["RequestIDMiddleware", "AccessLogAndMetricsMiddleware"]

_MAX_ERROR_MESSAGE = 200


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each incoming request and expose it in headers.

    - Honours an inbound `X-Request-ID` when the client supplies one
    - Sets `request.state.request_id`
    - Adds `X-Request-ID` to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Emit one `request_complete` log per call and record its latency.

    例外が発生した場合も finally でメトリクスとログを残し、例外自体は再送出する
    （500 応答への変換は Starlette の ServerErrorMiddleware に任せる）。
    """

    def __init__(self, app: ASGIApp, *, registry: MetricsRegistry) -> None:
        super().__init__(app)
        self._registry = registry

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        is_error = False
        is_timeout = False
        status_code: int | None = None
        error_type: str | None = None
        error_message: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            raw = str(exc)
            error_message = raw if len(raw) <= _MAX_ERROR_MESSAGE else f"{raw[:_MAX_ERROR_MESSAGE - 3]}..."
            is_timeout = isinstance(exc, asyncio.TimeoutError)
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            self._registry.record(path, latency_ms, is_error=is_error, is_timeout=is_timeout)
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                latency_ms=latency_ms,
                is_error=is_error,
                is_timeout=is_timeout,
                status_code=status_code,
                error_type=error_type,
                error_message=error_message,
                request_id=getattr(request.state, "request_id", None),
                client_ip=request.client.host if request.client else "unknown",
            )
