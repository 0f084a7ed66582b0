"""Prometheus metrics for HTTP request instrumentation.

``HTTPMetrics`` owns the four request metrics and registers them on an
injectable registry. Exposition reads from a *gatherer*, which is the
registry itself when it can be collected, or the process-wide
``prometheus_client.REGISTRY`` otherwise.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol, runtime_checkable

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
)
from prometheus_client.metrics_core import Metric

from promwatch.infra.observability.labels import LabelSetBuilder

logger = logging.getLogger("promwatch.metrics")


@runtime_checkable
class Registerer(Protocol):
    """Write side of a registry: admits new collectors."""

    def register(self, collector: Any) -> None: ...

    def unregister(self, collector: Any) -> None: ...


@runtime_checkable
class Gatherer(Protocol):
    """Read side of a registry: snapshots every registered metric."""

    def collect(self) -> Iterable[Metric]: ...


DEFAULT_GATHERER: Gatherer = REGISTRY
DEFAULT_SUBSYSTEM = "http"


class RegistrationConflictError(ValueError):
    """Raised when a metric with the same identity is already registered."""


def new_default_registry() -> CollectorRegistry:
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    return registry


def resolve_gatherer(registry: Registerer) -> Gatherer:
    if isinstance(registry, Gatherer):
        return registry
    logger.info(
        "registry %s cannot be collected, exposing the default registry instead",
        type(registry).__name__,
    )
    return DEFAULT_GATHERER


class CacheResultCounter:
    """Counter exposed under its exact name.

    A plain ``Counter`` is rendered as ``<name>_total`` plus a
    ``<name>_created`` series. Cache results are published as
    ``<name>{...}`` only, so the counting is delegated to an unregistered
    ``Counter`` and this collector re-emits its ``_total`` samples under
    the bare name, as an untyped family whose metadata matches the sample.
    """

    def __init__(
        self,
        name: str,
        documentation: str,
        labelnames: Iterable[str],
        namespace: str = "",
        subsystem: str = "",
        registry: Registerer | None = None,
    ):
        self.name = "_".join(part for part in (namespace, subsystem, name) if part)
        self.documentation = documentation
        self._counter = Counter(
            name,
            documentation,
            labelnames,
            namespace=namespace,
            subsystem=subsystem,
            registry=None,
        )
        if registry is not None:
            registry.register(self)

    def labels(self, **labels: str):
        return self._counter.labels(**labels)

    def describe(self) -> Iterable[Metric]:
        yield Metric(self.name, self.documentation, "untyped")

    def collect(self) -> Iterable[Metric]:
        family = Metric(self.name, self.documentation, "untyped")
        for metric in self._counter.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    family.add_sample(self.name, sample.labels, sample.value)
        yield family


class HTTPMetrics:
    def __init__(
        self,
        registry: Registerer,
        labels: LabelSetBuilder,
        namespace: str = "",
        subsystem: str = DEFAULT_SUBSYSTEM,
    ):
        if not isinstance(registry, Registerer):
            raise TypeError(
                f"{type(registry).__name__} cannot register metrics; "
                "expected an object with register() and unregister()"
            )
        self.registry = registry
        self.gatherer = resolve_gatherer(registry)
        self.labels = labels

        try:
            self.requests_total = Counter(
                "requests_total",
                "Count all http requests by status code, method and path.",
                labels.request_label_names,
                namespace=namespace,
                subsystem=subsystem,
                registry=registry,
            )
            self.request_duration = Histogram(
                "request_duration_seconds",
                "Duration of all HTTP requests by status code, method and path.",
                labels.request_label_names,
                namespace=namespace,
                subsystem=subsystem,
                registry=registry,
            )
            self.requests_in_progress = Gauge(
                "requests_in_progress_total",
                "All the requests in progress",
                labels.in_progress_label_names,
                namespace=namespace,
                subsystem=subsystem,
                registry=registry,
            )
            self.cache_results = CacheResultCounter(
                "cache_results",
                "Counts all cache hits by status code, method, and path",
                labels.cache_label_names,
                namespace=namespace,
                subsystem=subsystem,
                registry=registry,
            )
        except ValueError as exc:
            logger.error(
                "metric_registration_failed namespace=%s subsystem=%s error=%s",
                namespace or "-",
                subsystem or "-",
                exc,
            )
            raise RegistrationConflictError(str(exc)) from exc

    def inc_in_progress(self, method: str) -> None:
        self.requests_in_progress.labels(**self.labels.in_progress_labels(method)).inc()

    def dec_in_progress(self, method: str) -> None:
        self.requests_in_progress.labels(**self.labels.in_progress_labels(method)).dec()

    def observe_request(
        self, method: str, path: str, status_code: int, duration: float
    ) -> None:
        labels = self.labels.request_labels(method, path, status_code)
        self.requests_total.labels(**labels).inc()
        self.request_duration.labels(**labels).observe(duration)

    def observe_cache_result(
        self, method: str, path: str, status_code: int, cache_result: str
    ) -> None:
        self.cache_results.labels(
            **self.labels.cache_labels(method, path, status_code, cache_result)
        ).inc()
