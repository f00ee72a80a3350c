"""
Current tenant ("community") context.

Tenant-scoped rows are filtered to the tenant bound here. The value is
task-local, so concurrent requests never see each other's tenant.

Usage:
    from jela_shared.infrastructure.tenancy import tenant_scope

    with tenant_scope(7):
        notes = await service.list_all()
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# None = no tenant bound (tenant-scoped reads return nothing)
tenant_id_var: ContextVar[int | None] = ContextVar("tenant_id", default=None)

# Key under which a session may pin its own tenant in Session.info
SESSION_TENANT_KEY = "tenant_id"


def get_current_tenant() -> int | None:
    """Get the tenant bound to the current context."""
    return tenant_id_var.get()


def set_current_tenant(tenant_id: int | None):
    """Bind a tenant to the current context. Returns the reset token."""
    return tenant_id_var.set(tenant_id)


@contextmanager
def tenant_scope(tenant_id: int | None) -> Iterator[int | None]:
    """Bind a tenant for the duration of the block."""
    token = tenant_id_var.set(tenant_id)
    try:
        yield tenant_id
    finally:
        tenant_id_var.reset(token)


def resolve_tenant(session_info: dict | None = None) -> int | None:
    """
    Tenant for a session: Session.info["tenant_id"] wins over the context.
    """
    if session_info and session_info.get(SESSION_TENANT_KEY) is not None:
        return session_info[SESSION_TENANT_KEY]
    return tenant_id_var.get()
