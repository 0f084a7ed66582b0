from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from promwatch.infra.observability.labels import cache_result_from_header

if TYPE_CHECKING:
    from promwatch.instrumentation import PrometheusInstrumentation

logger = logging.getLogger("promwatch.http")


def route_path(request: Request) -> str:
    # 低基数标签：优先使用路由模板（如 /items/{item_id}）
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    return request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request metrics for every request passing through the app.

    The in-progress gauge brackets the downstream call; outcome metrics are
    written once the status code is known. Responses and exceptions are
    passed through untouched.
    """

    def __init__(self, app: ASGIApp, instrumentation: PrometheusInstrumentation):
        super().__init__(app)
        self.instrumentation = instrumentation

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        instrumentation = self.instrumentation
        if instrumentation.filters.skips_path(request.url.path):
            return await call_next(request)

        metrics = instrumentation.metrics
        method = request.method
        metrics.inc_in_progress(method)
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            logger.exception(
                "request_error method=%s route=%s status=%s",
                method,
                route_path(request),
                500,
                extra={
                    "extra": {
                        "method": method,
                        "route": route_path(request),
                        "status": 500,
                        "exception": repr(exc),
                    }
                },
            )
            raise
        finally:
            metrics.dec_in_progress(method)
            elapsed = time.perf_counter() - start
            self._record(request, response, elapsed)

    def _record(
        self, request: Request, response: Response | None, elapsed: float
    ) -> None:
        instrumentation = self.instrumentation
        status_code = response.status_code if response is not None else 500
        if not instrumentation.filters.records_status(status_code):
            return

        method = request.method
        path = route_path(request)
        instrumentation.metrics.observe_request(method, path, status_code, elapsed)

        if response is not None:
            cache_result = cache_result_from_header(
                response.headers.get(instrumentation.cache_header)
            )
            if cache_result is not None:
                instrumentation.metrics.observe_cache_result(
                    method, path, status_code, cache_result
                )

        if instrumentation.log_requests:
            self._log_request(method, path, status_code, elapsed)

    def _log_request(
        self, method: str, path: str, status_code: int, elapsed: float
    ) -> None:
        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        duration_ms = round(elapsed * 1000, 3)
        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f",
            method,
            path,
            status_code,
            duration_ms,
            extra={
                "extra": {
                    "method": method,
                    "route": path,
                    "status": status_code,
                    "duration_ms": duration_ms,
                }
            },
        )
