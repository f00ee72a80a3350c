"""
Request-level validation host and the FastAPI glue around it.

Each request owns one ValidationSink held by a ValidationHost on
`request.state`. Services created for the request are synced into it, so
errors recorded by any service (or by FastAPI's own request validation) end
up in one keyed collection.

Usage:
    @router.post("/notes")
    async def create_note(
        body: dict,
        service: CrudService = Depends(crud_service(NOTE_CONFIG)),
        host: ValidationHost = Depends(get_validation_host),
    ):
        if not await service.create(body):
            host.ensure_valid()
            raise InternalError("Unable to save note")
        return {"ok": True}
"""

from collections.abc import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from jela_core.data.storage import SqlAlchemyStorage
from jela_core.services.base_service import CrudConfig, CrudService
from jela_core.services.validation import ValidationSink
from jela_shared.config.logging import get_logger
from jela_shared.infrastructure.db import get_db
from jela_shared.utils.exceptions import ValidationFailedError

logger = get_logger(__name__)

_STATE_KEY = "validation_host"


class ValidationHost:
    """Owner of a request's validation sink."""

    def __init__(self, sink: ValidationSink | None = None):
        self._sink = sink if sink is not None else ValidationSink()

    @property
    def sink(self) -> ValidationSink:
        return self._sink

    @property
    def is_valid(self) -> bool:
        return self._sink.is_valid

    def sync(self, *services: CrudService) -> ValidationSink:
        """
        Merge each service's sink into the host's, then bind the service to
        the host's sink so later errors land there directly.
        """
        for service in services:
            if service.validation is not self._sink:
                self._sink.merge(service.validation)
                service.bind_validation(self._sink)
        return self._sink

    def ensure_valid(self, message: str = "Validation failed") -> None:
        """Raise ValidationFailedError (HTTP 400) if any error was recorded."""
        if not self._sink.is_valid:
            raise ValidationFailedError(self._sink.to_dict(), message=message)


def get_validation_host(request: Request) -> ValidationHost:
    """FastAPI dependency: the ValidationHost of the current request."""
    host = getattr(request.state, _STATE_KEY, None)
    if host is None:
        host = ValidationHost()
        setattr(request.state, _STATE_KEY, host)
    return host


def crud_service(config: CrudConfig) -> Callable[..., CrudService]:
    """
    Build a FastAPI dependency that yields a CrudService for `config`, bound
    to the request's database session and validation host.
    """

    def dependency(
        db: AsyncSession = Depends(get_db),
        host: ValidationHost = Depends(get_validation_host),
    ) -> CrudService:
        service = CrudService(config, SqlAlchemyStorage(db))
        host.sync(service)
        return service

    return dependency


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Fold FastAPI's request validation errors into the request's sink."""
    host = get_validation_host(request)
    host.sink.add_pydantic_errors(exc)
    logger.info(
        "Request validation failed",
        path=request.url.path,
        fields=host.sink.keys(),
    )
    return JSONResponse(
        status_code=400,
        content={"detail": {"message": "Validation failed", "errors": host.sink.to_dict()}},
    )


def register_validation_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
