from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

LOG_FORMATS: tuple[str, ...] = ("json", "plain")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_int_list(value: str | None) -> list[int]:
    try:
        return [int(item) for item in _as_list(value)]
    except ValueError as exc:
        raise ValueError(f"Expected a comma separated list of integers, got {value!r}") from exc


def _as_pairs(value: str | None, separator: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in _as_list(value):
        if separator not in item:
            raise ValueError(f"Expected 'key{separator}value', got {item!r}")
        key, raw = item.split(separator, 1)
        pairs[key.strip()] = raw.strip()
    return pairs


@dataclass
class Settings:
    SERVICE_NAME: str = "promwatch"
    METRICS_NAMESPACE: str = ""
    METRICS_SUBSYSTEM: str = "http"
    METRICS_PATH: str = "/metrics"
    METRICS_SKIP_PATHS: list[str] = field(default_factory=list)
    METRICS_IGNORE_STATUS_CODES: list[int] = field(default_factory=list)
    METRICS_CACHE_HEADER: str = "X-Cache"
    METRICS_CONSTANT_LABELS: dict[str, str] = field(default_factory=dict)
    METRICS_LOG_REQUESTS: bool = False
    METRICS_BASIC_AUTH_USERS: dict[str, str] = field(default_factory=dict)
    METRICS_API_KEY: str | None = None
    METRICS_TOKEN_SECRET: str | None = None
    METRICS_TOKEN_ALGORITHM: str = "HS256"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    def __post_init__(self) -> None:
        if not self.METRICS_PATH.startswith("/"):
            raise ValueError("METRICS_PATH must start with '/'.")
        if not self.METRICS_CACHE_HEADER:
            raise ValueError("METRICS_CACHE_HEADER must not be empty.")
        invalid = [
            code for code in self.METRICS_IGNORE_STATUS_CODES if not 100 <= code <= 599
        ]
        if invalid:
            raise ValueError(
                f"METRICS_IGNORE_STATUS_CODES contains invalid HTTP status codes: {invalid}"
            )
        if self.LOG_FORMAT not in LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            SERVICE_NAME=os.environ.get("SERVICE_NAME", cls.SERVICE_NAME),
            METRICS_NAMESPACE=os.environ.get(
                "METRICS_NAMESPACE", cls.METRICS_NAMESPACE
            ),
            METRICS_SUBSYSTEM=os.environ.get(
                "METRICS_SUBSYSTEM", cls.METRICS_SUBSYSTEM
            ),
            METRICS_PATH=os.environ.get("METRICS_PATH", cls.METRICS_PATH),
            METRICS_SKIP_PATHS=_as_list(os.environ.get("METRICS_SKIP_PATHS")),
            METRICS_IGNORE_STATUS_CODES=_as_int_list(
                os.environ.get("METRICS_IGNORE_STATUS_CODES")
            ),
            METRICS_CACHE_HEADER=os.environ.get(
                "METRICS_CACHE_HEADER", cls.METRICS_CACHE_HEADER
            ),
            METRICS_CONSTANT_LABELS=_as_pairs(
                os.environ.get("METRICS_CONSTANT_LABELS"), "="
            ),
            METRICS_LOG_REQUESTS=_as_bool(
                os.environ.get("METRICS_LOG_REQUESTS"), cls.METRICS_LOG_REQUESTS
            ),
            METRICS_BASIC_AUTH_USERS=_as_pairs(
                os.environ.get("METRICS_BASIC_AUTH_USERS"), ":"
            ),
            METRICS_API_KEY=os.environ.get("METRICS_API_KEY"),
            METRICS_TOKEN_SECRET=os.environ.get("METRICS_TOKEN_SECRET"),
            METRICS_TOKEN_ALGORITHM=os.environ.get(
                "METRICS_TOKEN_ALGORITHM", cls.METRICS_TOKEN_ALGORITHM
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).lower(),
            HOST=os.environ.get("HOST", cls.HOST),
            PORT=int(os.environ.get("PORT", cls.PORT)),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
