"""
Utilities module: Exceptions.
"""

from jela_shared.utils.exceptions import (
    ForbiddenError,
    ValidationFailedError,
    InternalError,
    ConfigurationError,
    TenantContextError,
    EmailAddressError,
)

__all__ = [
    "ForbiddenError",
    "ValidationFailedError",
    "InternalError",
    "ConfigurationError",
    "TenantContextError",
    "EmailAddressError",
]
