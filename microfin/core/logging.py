import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from microfin.core import context
from microfin.core.settings import settings

# extras services pass through ``extra=`` that are lifted into the JSON line
_DOMAIN_FIELDS = (
    "loan_id",
    "loan_status",
    "customer_code",
    "account_number",
    "resource_type",
    "resource_id",
    "alert_id",
    "task_id",
)


class RequestContextFilter(logging.Filter):
    """Copy the request, actor and branch of the current request onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = context.current()
        record.request_id = ctx.request_id
        record.actor_id = ctx.actor_id
        record.actor_role = ctx.actor_role
        record.branch_id = ctx.branch_id
        return True


class JsonFormatter(logging.Formatter):
    def __init__(self, stream_label: str = "app") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "environment": settings.environment,
            "request_id": getattr(record, "request_id", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
            "actor_role": getattr(record, "actor_role", "-"),
            "branch_id": getattr(record, "branch_id", "-"),
        }
        for name in _DOMAIN_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _stdout_handler(level: str, formatter: str) -> dict:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    quiet_level = "WARNING" if log_level in {"DEBUG", "INFO"} else log_level
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "app"},
                "audit_json": {"()": JsonFormatter, "stream_label": "audit"},
            },
            "handlers": {
                "default": _stdout_handler(log_level, "json"),
                "audit": _stdout_handler(log_level, "audit_json"),
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level},
                "microfin.audit": {"handlers": ["audit"], "level": log_level, "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
                # statement echo is enabled via DB_ECHO, not the root level
                "sqlalchemy.engine": {"level": quiet_level},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured level=%s environment=%s", log_level, settings.environment
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger("microfin.audit")
