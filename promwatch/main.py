import logging

import uvicorn
from fastapi import FastAPI

from promwatch.common.auth import api_key, basic_auth, bearer_token
from promwatch.common.config import Settings, get_settings
from promwatch.common.logging import setup_logging
from promwatch.instrumentation import PrometheusInstrumentation


def _build_guards(settings: Settings) -> list:
    guards = []
    if settings.METRICS_BASIC_AUTH_USERS:
        guards.append(basic_auth(settings.METRICS_BASIC_AUTH_USERS))
    if settings.METRICS_API_KEY:
        guards.append(api_key(settings.METRICS_API_KEY))
    if settings.METRICS_TOKEN_SECRET:
        guards.append(
            bearer_token(
                settings.METRICS_TOKEN_SECRET,
                algorithm=settings.METRICS_TOKEN_ALGORITHM,
            )
        )
    return guards


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.SERVICE_NAME)
    app = FastAPI(
        title="promwatch",
        version="1.0.0",
        description="HTTP request metrics for FastAPI services",
    )

    instrumentation = PrometheusInstrumentation.from_settings(settings)
    guards = _build_guards(settings)
    instrumentation.register_at(app, settings.METRICS_PATH, *guards)
    instrumentation.instrument(app)
    app.state.metrics = instrumentation

    startup_logger = logging.getLogger("promwatch.startup")
    startup_logger.info(
        "metrics enabled service=%s path=%s guards=%d skip_paths=%s ignore_status_codes=%s",
        settings.SERVICE_NAME,
        settings.METRICS_PATH,
        len(guards),
        sorted(instrumentation.filters.skip_paths),
        sorted(instrumentation.filters.ignore_status_codes),
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
