"""
Structured logging for jela_core.

Services log with keyword context instead of interpolating it into the
message, so the entity name, ids and error text stay machine readable:

    logger.warning("Unable to create new instance of Note", entity="Note", error=str(e))

The keywords end up in `record.extra_data`. Records also carry the request id
and the bound tenant (see RequestContextFilter). Production writes one JSON
object per line, development a single readable line.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from jela_shared.config.settings import settings

# Loggers of this library, all children of "jela_core"
ROOT_LOGGER = "jela_core"


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    """Request id, tenant and keyword context of a record, empty values dropped."""
    context: dict[str, Any] = {}
    request_id = getattr(record, "request_id", None)
    if request_id and request_id != "-":
        context["request_id"] = request_id
    tenant_id = getattr(record, "tenant_id", None)
    if tenant_id is not None:
        context["tenant_id"] = tenant_id
    context.update(getattr(record, "extra_data", None) or {})
    return context


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _context_of(record)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """`12:00:01 WARNING  jela_core.services: message (entity=Note error=...)`"""

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{datetime.fromtimestamp(record.created):%H:%M:%S} "
            f"{record.levelname:8} {record.name}: {record.getMessage()}"
        )
        context = _context_of(record)
        if context:
            line += " (" + " ".join(f"{k}={v}" for k, v in context.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger whose keyword arguments (other than the logging ones) go to `extra_data`."""

    def _log(
        self,
        level: int,
        msg: Any,
        args: Any,
        exc_info: Any = None,
        extra: dict | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **context: Any,
    ) -> None:
        extra = dict(extra or {})
        extra["extra_data"] = context or None
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Call once at startup."""
    # Deferred: correlation imports fastapi, which is not needed to log
    from jela_shared.infrastructure.correlation import RequestContextFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    if settings.environment == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # SQL echo is controlled by database_echo, not by the log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.error("Unable to set active collection", entity="Note")
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_email(email: str | None) -> str:
    """`user@example.com` -> `us***@example.com`, so addresses never reach the logs."""
    if not email:
        return "<no-email>"
    local, at, domain = email.partition("@")
    if not at:
        return "***@invalid"
    keep = 2 if len(local) > 2 else 1
    return f"{local[:keep]}***@{domain}"


jela_logger = get_logger(ROOT_LOGGER)
data_logger = get_logger(f"{ROOT_LOGGER}.data")
email_logger = get_logger(f"{ROOT_LOGGER}.email")
