"""
Centralized exceptions for consistent error handling.

HTTP-facing errors derive from AppException (a FastAPI HTTPException that logs
itself). Startup and data-layer errors derive from plain Exception so they can
be raised outside a request.

Usage:
    from jela_shared.utils.exceptions import ForbiddenError, ConfigurationError

    raise ForbiddenError("delete notes")
    raise ConfigurationError("Note is not mapped")
"""

from typing import Any

from fastapi import HTTPException, status

from jela_shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All HTTP-facing exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: Any,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        message = detail if isinstance(detail, str) else detail.get("message", str(detail))
        log_fn(message, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Raised by permission hooks of CRUD services.

    Usage:
        raise ForbiddenError("delete notes")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not authorized to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationFailedError(AppException):
    """
    Keyed validation failure (400).

    The response body carries every message collected for the request.

    Usage:
        raise ValidationFailedError(sink.to_dict())
    """

    def __init__(
        self,
        errors: dict[str, list[str]],
        message: str = "Validation failed",
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": message, "errors": errors},
            log_level="info",
            fields=sorted(errors),
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """Internal server error (500)."""

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )



# =============================================================================
# Non-HTTP Errors
# =============================================================================


class ConfigurationError(Exception):
    """
    Model or schema misconfiguration detected at startup.

    Examples: a capability registered on an unmapped class, or a
    registered table missing its hidden columns in the live database.
    """

    def __init__(self, message: str, **log_context: Any):
        logger.error(message, **log_context)
        super().__init__(message)


class TenantContextError(Exception):
    """A tenant-scoped row was written with no tenant bound to the context."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"No tenant bound while persisting {entity}")


class EmailAddressError(ValueError):
    """An email address could not be parsed."""

    def __init__(self, address: str | None, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid email address: {reason}")
