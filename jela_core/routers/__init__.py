"""
FastAPI boundary: validation host, service dependencies, page parameters.
"""

from jela_core.routers._base import (
    ValidationHost,
    crud_service,
    get_validation_host,
    register_validation_handlers,
    request_validation_handler,
)
from jela_core.routers._common import PageRequest, get_page_request

__all__ = [
    "ValidationHost",
    "crud_service",
    "get_validation_host",
    "register_validation_handlers",
    "request_validation_handler",
    "PageRequest",
    "get_page_request",
]
