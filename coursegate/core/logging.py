from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from ..middlewares import principal_ctx_var, request_id_ctx_var

# Per-request client chatter from httpx duplicates the auth.* log lines.
QUIET_LOGGERS = ("httpx", "httpcore")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, tagged with the service and request context."""

    def __init__(self, service: Optional[str] = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service
        request_id = request_id_ctx_var.get()
        if request_id:
            payload["request_id"] = request_id
        principal = principal_ctx_var.get()
        if principal:
            payload["principal"] = principal
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            for key, value in extra.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(settings=None) -> None:
    """Route the root logger through ``JsonLogFormatter``.

    The level comes from ``LOG_LEVEL`` (``DEBUG`` when ``APP_DEBUG`` is on).
    """

    level = logging.INFO
    service = None
    if settings is not None:
        service = settings.APP_NAME
        level = logging.DEBUG if settings.APP_DEBUG else logging.getLevelName(settings.LOG_LEVEL.upper())
        if not isinstance(level, int):
            level = logging.INFO
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service=service))
    logging.root.handlers = [handler]
    logging.root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
