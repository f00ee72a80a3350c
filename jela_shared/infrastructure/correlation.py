"""
Request correlation.

Every request gets an id (taken from `X-Request-ID` or generated), echoed in
the response and attached to each log record written while it is handled,
together with the tenant bound at that moment.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from jela_shared.infrastructure.tenancy import get_current_tenant

REQUEST_ID_HEADER = "X-Request-ID"

# "" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    return request_id_var.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds the request id for the duration of the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestContextFilter:
    """
    Logging filter adding `request_id` ("-" outside a request) and
    `tenant_id` (None when unbound) to every record.
    """

    def filter(self, record) -> bool:
        record.request_id = get_request_id() or "-"
        record.tenant_id = get_current_tenant()
        return True
