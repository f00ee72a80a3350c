"""
Session wiring: the project session class with row filters and the save
interceptor attached, and factories bound to a RowFilterPolicy.

Usage:
    policy = RowFilterPolicy()
    policy.register_all(Base)
    factory = make_session_factory(engine, policy)

    async with factory() as session:
        storage = SqlAlchemyStorage(session)
"""

from sqlalchemy import Engine, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session, sessionmaker

from jela_core.data.row_filter import (
    POLICY_KEY,
    RowFilterPolicy,
    apply_row_filters,
    row_filter_policy,
)
from jela_core.data.save_interceptor import intercept_flush
from jela_shared.infrastructure.tenancy import SESSION_TENANT_KEY


class JelaSession(Session):
    """Session that filters reads and intercepts deletes of registered types."""


event.listen(JelaSession, "do_orm_execute", apply_row_filters)
event.listen(JelaSession, "before_flush", intercept_flush)


def _session_info(policy: RowFilterPolicy | None, tenant_id: int | None) -> dict:
    info = {POLICY_KEY: policy if policy is not None else row_filter_policy}
    if tenant_id is not None:
        info[SESSION_TENANT_KEY] = tenant_id
    return info


def make_session_factory(
    engine: AsyncEngine,
    policy: RowFilterPolicy | None = None,
    tenant_id: int | None = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Async session factory for `engine`.

    Passing `tenant_id` pins every session to that tenant, regardless of
    the tenant context.
    """
    return async_sessionmaker(
        bind=engine,
        sync_session_class=JelaSession,
        autoflush=False,
        expire_on_commit=False,
        info=_session_info(policy, tenant_id),
    )


def make_sync_session_factory(
    engine: Engine,
    policy: RowFilterPolicy | None = None,
    tenant_id: int | None = None,
) -> sessionmaker[JelaSession]:
    """Sync counterpart of make_session_factory() for scripts and migrations."""
    return sessionmaker(
        bind=engine,
        class_=JelaSession,
        autoflush=False,
        expire_on_commit=False,
        info=_session_info(policy, tenant_id),
    )
