from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from promwatch import main
from promwatch.common.config import Settings
from promwatch.common.logging import JsonFormatter, ServiceFilter, setup_logging
from promwatch.main import create_app


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch):
    # dictConfig 会替换 root handlers，导致 caplog 收不到日志
    calls: list[tuple[str, str, str]] = []
    monkeypatch.setattr(
        main,
        "setup_logging",
        lambda level, fmt, service_name: calls.append((level, fmt, service_name)),
    )
    return calls


def test_create_app_configures_logging(logging_calls):
    create_app(Settings(SERVICE_NAME="orders", LOG_LEVEL="DEBUG", LOG_FORMAT="plain"))
    assert logging_calls == [("DEBUG", "plain", "orders")]


def _reset_logger(name: str) -> None:
    logger = logging.getLogger(name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def test_setup_logging_installs_json_formatter():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("WARNING", "json", "orders")
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
        assert logging.getLogger("promwatch.startup").propagate is False

        access = logging.getLogger("promwatch.http")
        assert access.propagate is False
        assert access.level == logging.WARNING
        (handler,) = access.handlers
        assert isinstance(handler.formatter, JsonFormatter)
        (service_filter,) = handler.filters
        assert isinstance(service_filter, ServiceFilter)
        assert service_filter.service_name == "orders"
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        _reset_logger("promwatch.startup")
        _reset_logger("promwatch.http")


def test_create_app_wires_metrics_from_settings():
    settings = Settings(
        SERVICE_NAME="orders",
        METRICS_NAMESPACE="shop",
        METRICS_SKIP_PATHS=["/health"],
        METRICS_IGNORE_STATUS_CODES=[404],
    )
    app = create_app(settings)
    client = TestClient(app)

    assert client.get("/health").status_code == 200
    assert client.get("/does-not-exist").status_code == 404
    assert client.get("/openapi.json").status_code == 200

    got = client.get("/metrics").text
    assert (
        'shop_http_requests_total{method="GET",path="/openapi.json",service="orders",status_code="200"} 1.0'
        in got
    )
    assert 'path="/health"' not in got
    assert 'status_code="404"' not in got
    assert app.state.metrics.metrics_path == "/metrics"


def test_create_app_with_constant_labels():
    settings = Settings(METRICS_CONSTANT_LABELS={"env": "test"})
    client = TestClient(create_app(settings))
    client.get("/openapi.json")

    got = client.get("/metrics").text
    assert (
        'http_requests_total{env="test",method="GET",path="/openapi.json",status_code="200"} 1.0'
        in got
    )


def test_create_app_guards_metrics_endpoint():
    settings = Settings(
        METRICS_BASIC_AUTH_USERS={"prometheus": "secret"},
        METRICS_API_KEY="key-123",
    )
    client = TestClient(create_app(settings))

    assert client.get("/metrics").status_code == 401
    assert client.get("/metrics", auth=("prometheus", "secret")).status_code == 401
    resp = client.get(
        "/metrics",
        auth=("prometheus", "secret"),
        headers={"X-API-Key": "key-123"},
    )
    assert resp.status_code == 200


def test_unmatched_paths_use_raw_path():
    client = TestClient(create_app(Settings(SERVICE_NAME="orders")))
    assert client.get("/nowhere").status_code == 404

    got = client.get("/metrics").text
    assert (
        'http_requests_total{method="GET",path="/nowhere",service="orders",status_code="404"} 1.0'
        in got
    )


def test_request_log_emitted_when_enabled(caplog):
    settings = Settings(SERVICE_NAME="orders", METRICS_LOG_REQUESTS=True)
    client = TestClient(create_app(settings))

    with caplog.at_level("INFO", logger="promwatch.http"):
        assert client.get("/health").status_code == 200

    records = [
        rec
        for rec in caplog.records
        if rec.name == "promwatch.http" and rec.getMessage().startswith("request ")
    ]
    assert records, "should capture request logs"
    rec = records[-1]
    assert rec.extra["route"] == "/health"
    assert rec.extra["status"] == 200
    assert rec.levelno == logging.INFO


def test_request_log_disabled_by_default(caplog):
    client = TestClient(create_app(Settings()))

    with caplog.at_level("INFO", logger="promwatch.http"):
        client.get("/health")

    assert not [rec for rec in caplog.records if rec.name == "promwatch.http"]


def test_handler_error_is_logged_and_reraised(caplog):
    app = create_app(Settings(SERVICE_NAME="orders"))

    @app.get("/explode")
    def explode():
        raise RuntimeError("kaboom")

    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level("ERROR", logger="promwatch.http"):
        assert client.get("/explode").status_code == 500

    errors = [rec for rec in caplog.records if rec.getMessage().startswith("request_error")]
    assert errors
    assert errors[-1].exc_info is not None
    assert errors[-1].extra["status"] == 500

    got = client.get("/metrics").text
    assert (
        'http_requests_total{method="GET",path="/explode",service="orders",status_code="500"} 1.0'
        in got
    )


def test_json_formatter_merges_extra():
    record = logging.LogRecord(
        "promwatch.http", logging.INFO, __file__, 1, "request %s", ("GET",), None
    )
    record.extra = {"route": "/", "status": 200}
    payload = json.loads(JsonFormatter().format(record))
    assert payload == {
        "level": "INFO",
        "logger": "promwatch.http",
        "message": "request GET",
        "route": "/",
        "status": 200,
    }


def test_json_formatter_puts_service_and_request_fields_first():
    record = logging.LogRecord(
        "promwatch.http", logging.INFO, __file__, 1, "request", (), None
    )
    record.extra = {"duration_ms": 1.5, "status": 200, "route": "/items/{item_id}", "method": "GET"}
    ServiceFilter("orders").filter(record)

    payload = json.loads(JsonFormatter().format(record))
    assert list(payload) == [
        "level",
        "logger",
        "message",
        "service",
        "method",
        "route",
        "status",
        "duration_ms",
    ]
    assert payload["service"] == "orders"
    assert payload["route"] == "/items/{item_id}"


def test_service_filter_keeps_existing_service():
    record = logging.LogRecord("promwatch.http", logging.INFO, __file__, 1, "x", (), None)
    record.service = "upstream"
    assert ServiceFilter("orders").filter(record) is True
    assert record.service == "upstream"


def test_service_filter_without_name_is_omitted_from_json():
    record = logging.LogRecord("promwatch.http", logging.INFO, __file__, 1, "x", (), None)
    ServiceFilter().filter(record)
    assert record.service == "-"
    assert "service" not in json.loads(JsonFormatter().format(record))
