import json
import logging
from logging.config import dictConfig

# Fields the request hook attaches to promwatch.http records, in output order.
REQUEST_FIELDS = ("method", "route", "status", "duration_ms")


def setup_logging(level: str = "INFO", fmt: str = "json", service_name: str = "") -> None:
    """Configure root, startup and request-log handlers.

    Request records from ``promwatch.http`` go to stdout, everything else to
    stderr. Every handler stamps ``service_name`` on its records.
    """
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "service": {
                    "()": ServiceFilter,
                    "service_name": service_name,
                },
            },
            "formatters": {
                "json": {
                    "()": JsonFormatter,
                },
                "plain": {
                    "format": "%(levelname)s %(name)s [%(service)s]: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": fmt,
                    "filters": ["service"],
                },
                "access": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": fmt,
                    "filters": ["service"],
                },
                "startup_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "filters": ["service"],
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                "promwatch.http": {
                    "handlers": ["access"],
                    "level": level,
                    "propagate": False,
                },
                "promwatch.startup": {
                    "handlers": ["startup_console"],
                    "level": "INFO",
                    "propagate": False,
                },
            },
        }
    )


class ServiceFilter(logging.Filter):
    def __init__(self, service_name: str = ""):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "service", None):
            record.service = self.service_name or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        service = getattr(record, "service", None)
        if service and service != "-":
            payload["service"] = service
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for key in REQUEST_FIELDS:
                if key in extra:
                    payload[key] = extra[key]
            payload.update(extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
