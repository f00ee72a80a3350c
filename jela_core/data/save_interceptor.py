"""
Save interceptor: rewrites staged changes right before they are flushed.

- Deleting a soft-deletable entity marks it `is_deleted = True` instead
  (the DELETE becomes an UPDATE).
- New tenant-scoped entities without a `community_id` are stamped with the
  current tenant.

Runs as a `before_flush` listener, so commit(), flush() and autoflush all go
through it.
"""

from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.unitofwork import UOWTransaction

from jela_core.data.row_filter import policy_for
from jela_shared.config.constants import HiddenColumns
from jela_shared.config.logging import data_logger as logger
from jela_shared.infrastructure.tenancy import resolve_tenant
from jela_shared.utils.exceptions import TenantContextError


def intercept_flush(
    session: Session,
    flush_context: UOWTransaction,
    instances: Any,
) -> None:
    """`before_flush` listener."""
    policy = policy_for(session)

    for obj in list(session.deleted):
        if policy.is_soft_deletable(type(obj)):
            setattr(obj, HiddenColumns.IS_DELETED, True)
            # Re-adding a persistent object cancels its pending delete
            session.add(obj)
            logger.debug(
                "Converted delete to soft delete",
                entity=type(obj).__name__,
                entity_id=getattr(obj, "id", None),
            )

    tenant_id = None
    for obj in session.new:
        if not policy.is_tenant_scoped(type(obj)):
            continue
        if getattr(obj, HiddenColumns.COMMUNITY_ID, None) is not None:
            continue
        if tenant_id is None:
            tenant_id = resolve_tenant(session.info)
            if tenant_id is None:
                raise TenantContextError(type(obj).__name__)
        setattr(obj, HiddenColumns.COMMUNITY_ID, tenant_id)


def restore(entity: Any) -> None:
    """
    Undo a soft delete. The change is persisted by the next commit.

    The entity has to be loaded with `include_deleted=True` first.
    """
    setattr(entity, HiddenColumns.IS_DELETED, False)
