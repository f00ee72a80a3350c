"""
Infrastructure module: database sessions, correlation IDs, tenant context.
"""

from jela_shared.infrastructure.db import (
    get_engine,
    get_db,
    get_session_factory,
    configure_session_factory,
    safe_commit,
)
from jela_shared.infrastructure.tenancy import (
    get_current_tenant,
    set_current_tenant,
    tenant_scope,
    resolve_tenant,
)

__all__ = [
    # db
    "get_engine",
    "get_db",
    "get_session_factory",
    "configure_session_factory",
    "safe_commit",
    # tenancy
    "get_current_tenant",
    "set_current_tenant",
    "tenant_scope",
    "resolve_tenant",
]
