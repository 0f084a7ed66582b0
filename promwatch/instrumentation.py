"""Prometheus instrumentation for FastAPI applications.

Typical wiring::

    metrics = PrometheusInstrumentation.new("orders-api")
    metrics.register_at(app, "/metrics")
    metrics.instrument(app)

Every request then feeds ``http_requests_total``,
``http_request_duration_seconds``, ``http_requests_in_progress_total`` and,
when a cache header is present on the response, ``http_cache_results``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from fastapi import Depends
from starlette.middleware import Middleware

from promwatch.common.config import Settings
from promwatch.infra.observability.exposition import build_metrics_endpoint
from promwatch.infra.observability.filters import FilterPolicy
from promwatch.infra.observability.labels import LabelSetBuilder
from promwatch.infra.observability.metrics import (
    DEFAULT_SUBSYSTEM,
    Gatherer,
    HTTPMetrics,
    Registerer,
    new_default_registry,
)
from promwatch.infra.observability.middleware import MetricsMiddleware

DEFAULT_CACHE_HEADER = "X-Cache"

logger = logging.getLogger("promwatch.metrics")


class PrometheusInstrumentation:
    def __init__(
        self,
        registry: Registerer | None = None,
        service_name: str = "",
        namespace: str = "",
        subsystem: str = DEFAULT_SUBSYSTEM,
        constant_labels: Mapping[str, str] | None = None,
    ):
        if registry is None:
            registry = new_default_registry()
        self.service_name = service_name
        self.namespace = namespace
        self.subsystem = subsystem
        self.labels = LabelSetBuilder(service_name, constant_labels)
        self.metrics = HTTPMetrics(registry, self.labels, namespace, subsystem)
        self.filters = FilterPolicy()
        self.cache_header = DEFAULT_CACHE_HEADER
        self.log_requests = False

    @classmethod
    def new(cls, service_name: str) -> "PrometheusInstrumentation":
        return cls(service_name=service_name)

    @classmethod
    def new_with(
        cls, service_name: str, namespace: str, subsystem: str
    ) -> "PrometheusInstrumentation":
        return cls(service_name=service_name, namespace=namespace, subsystem=subsystem)

    @classmethod
    def new_with_labels(
        cls, constant_labels: Mapping[str, str], namespace: str, subsystem: str
    ) -> "PrometheusInstrumentation":
        return cls(
            namespace=namespace, subsystem=subsystem, constant_labels=constant_labels
        )

    @classmethod
    def new_with_registry(
        cls,
        registry: Registerer,
        service_name: str,
        namespace: str,
        subsystem: str,
        constant_labels: Mapping[str, str] | None = None,
    ) -> "PrometheusInstrumentation":
        """Register the metrics on ``registry`` instead of a private one.

        When ``registry`` cannot be collected, the endpoint mounted by
        :meth:`register_at` exposes ``prometheus_client.REGISTRY``.
        """
        return cls(
            registry=registry,
            service_name=service_name,
            namespace=namespace,
            subsystem=subsystem,
            constant_labels=constant_labels,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: Registerer | None = None
    ) -> "PrometheusInstrumentation":
        instance = cls(
            registry=registry,
            service_name=settings.SERVICE_NAME,
            namespace=settings.METRICS_NAMESPACE,
            subsystem=settings.METRICS_SUBSYSTEM,
            constant_labels=settings.METRICS_CONSTANT_LABELS,
        )
        instance.set_skip_paths(settings.METRICS_SKIP_PATHS)
        instance.set_ignore_status_codes(settings.METRICS_IGNORE_STATUS_CODES)
        instance.custom_cache_key(settings.METRICS_CACHE_HEADER)
        instance.log_requests = settings.METRICS_LOG_REQUESTS
        return instance

    @property
    def registry(self) -> Registerer:
        return self.metrics.registry

    @property
    def gatherer(self) -> Gatherer:
        return self.metrics.gatherer

    @property
    def metrics_path(self) -> str | None:
        return self.filters.exposition_path

    def set_skip_paths(self, paths: Iterable[str]) -> "PrometheusInstrumentation":
        self.filters.add_skip_paths(paths)
        return self

    def set_ignore_status_codes(
        self, codes: Iterable[int]
    ) -> "PrometheusInstrumentation":
        self.filters.add_ignore_status_codes(codes)
        return self

    def custom_cache_key(self, header_name: str) -> "PrometheusInstrumentation":
        if not header_name:
            raise ValueError("Cache header name must not be empty")
        self.cache_header = header_name
        return self

    def register_at(self, app: Any, path: str, *guards: Callable[..., Any]) -> None:
        """Serve the gatherer's metrics at ``path`` on ``app``.

        ``guards`` are FastAPI dependencies evaluated in the given order
        before the metrics are rendered; the first one to raise stops the
        request. Requests to ``path`` are never instrumented.
        """
        app.add_api_route(
            path,
            build_metrics_endpoint(self.gatherer),
            methods=["GET"],
            include_in_schema=False,
            dependencies=[Depends(guard) for guard in guards],
        )
        self.filters.exposition_path = path
        logger.info("metrics endpoint registered path=%s guards=%d", path, len(guards))

    @property
    def middleware(self) -> Middleware:
        return Middleware(MetricsMiddleware, instrumentation=self)

    def instrument(self, app: Any) -> None:
        app.add_middleware(MetricsMiddleware, instrumentation=self)
