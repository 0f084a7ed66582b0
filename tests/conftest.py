from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from promwatch.common.config import get_settings


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture(autouse=True)
def reset_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def anyio_backend():
    return "asyncio"
