from __future__ import annotations

import re
from typing import Mapping

# Dynamic label names; constant labels may not reuse them.
METHOD = "method"
PATH = "path"
STATUS_CODE = "status_code"
SERVICE = "service"
CACHE_RESULT = "cache_result"

# Histogram bucket bound, added by prometheus_client.
BUCKET = "le"

RESERVED_LABELS = frozenset({METHOD, PATH, STATUS_CODE, CACHE_RESULT, BUCKET})

CACHE_HIT = "hit"
CACHE_MISS = "miss"

_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def cache_result_from_header(value: str | None) -> str | None:
    """Map a cache header value to a ``cache_result`` label value.

    Only ``hit`` and ``miss`` are recorded; anything else means the request
    carries no cache observation.
    """
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in (CACHE_HIT, CACHE_MISS):
        return normalized
    return None


class LabelSetBuilder:
    """Builds the label mappings handed to each HTTP metric.

    Label names are sorted so every call site of a metric uses the same
    names in the same order, matching the alphabetical order of the text
    exposition format.
    """

    def __init__(
        self,
        service_name: str = "",
        constant_labels: Mapping[str, str] | None = None,
    ):
        if constant_labels:
            for name in constant_labels:
                if not _LABEL_NAME_RE.match(name) or name.startswith("__"):
                    raise ValueError(f"Invalid constant label name: {name!r}")
                if name in RESERVED_LABELS:
                    raise ValueError(
                        f"Constant label {name!r} collides with a reserved label"
                    )
            static = {name: str(value) for name, value in constant_labels.items()}
        elif service_name:
            static = {SERVICE: service_name}
        else:
            static = {}

        self._static: dict[str, str] = static
        self.request_label_names: tuple[str, ...] = tuple(
            sorted([*static, METHOD, PATH, STATUS_CODE])
        )
        self.in_progress_label_names: tuple[str, ...] = tuple(sorted([*static, METHOD]))
        self.cache_label_names: tuple[str, ...] = tuple(
            sorted([*self.request_label_names, CACHE_RESULT])
        )

    @property
    def static_labels(self) -> dict[str, str]:
        return dict(self._static)

    def request_labels(self, method: str, path: str, status_code: int) -> dict[str, str]:
        return {
            **self._static,
            METHOD: method,
            PATH: path,
            STATUS_CODE: str(status_code),
        }

    def in_progress_labels(self, method: str) -> dict[str, str]:
        return {**self._static, METHOD: method}

    def cache_labels(
        self, method: str, path: str, status_code: int, cache_result: str
    ) -> dict[str, str]:
        labels = self.request_labels(method, path, status_code)
        labels[CACHE_RESULT] = cache_result
        return labels
