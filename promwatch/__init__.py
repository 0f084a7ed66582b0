from .common.auth import AuthenticationError, api_key, basic_auth, bearer_token
from .infra.observability.filters import FilterPolicy
from .infra.observability.labels import LabelSetBuilder
from .infra.observability.metrics import (
    DEFAULT_GATHERER,
    Gatherer,
    HTTPMetrics,
    Registerer,
    RegistrationConflictError,
    new_default_registry,
)
from .infra.observability.middleware import MetricsMiddleware
from .instrumentation import DEFAULT_CACHE_HEADER, PrometheusInstrumentation

__all__ = [
    "PrometheusInstrumentation",
    "DEFAULT_CACHE_HEADER",
    "MetricsMiddleware",
    "HTTPMetrics",
    "LabelSetBuilder",
    "FilterPolicy",
    "Registerer",
    "Gatherer",
    "DEFAULT_GATHERER",
    "RegistrationConflictError",
    "new_default_registry",
    "AuthenticationError",
    "basic_auth",
    "api_key",
    "bearer_token",
]
