"""
Storage provider: the narrow persistence surface CRUD services depend on.

SqlAlchemyStorage implements it over an AsyncSession created by
make_session_factory(), so every statement it runs is row filtered and every
commit goes through the save interceptor.
"""

from collections.abc import Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from sqlalchemy import Select, func, inspect as sa_inspect, select
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapper

from jela_core.data.context import JelaSession
from jela_core.data.row_filter import filter_context, policy_for
from jela_core.models.base import Capability
from jela_shared.infrastructure.db import safe_commit
from jela_shared.utils.exceptions import ConfigurationError

ModelT = TypeVar("ModelT")


@runtime_checkable
class StorageProvider(Protocol):
    """Persistence operations used by CrudService and PaginatedList."""

    def collection(self, model: type) -> Mapper:
        """Resolve the backing collection of `model`, raising if misconfigured."""
        ...

    def query(self, model: type[ModelT]) -> Select:
        """Base (row filtered) query for `model`."""
        ...

    async def scalars(self, stmt: Select) -> Sequence[Any]:
        ...

    async def first(self, stmt: Select) -> Any | None:
        ...

    async def count(self, stmt: Select) -> int:
        ...

    async def find_by_id(self, model: type[ModelT], key: Any) -> ModelT | None:
        ...

    def add(self, entity: Any) -> None:
        ...

    async def merge(self, entity: ModelT) -> ModelT:
        ...

    async def remove(self, entity: Any) -> None:
        ...

    async def commit(self) -> int:
        """Persist staged changes. Returns the number of affected entities."""
        ...

    async def rollback(self) -> None:
        ...


class SqlAlchemyStorage:
    """StorageProvider over an AsyncSession."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    def collection(self, model: type) -> Mapper:
        try:
            mapper = sa_inspect(model)
        except NoInspectionAvailable as e:
            raise ConfigurationError(
                f"{getattr(model, '__name__', model)!s} is not a mapped class",
                error=str(e),
            ) from e

        sync_session = self._session.sync_session
        if not isinstance(sync_session, JelaSession):
            # Without the listeners reads are unfiltered and deletes are physical
            raise ConfigurationError(
                f"Session for {model.__name__} is not a JelaSession",
                entity=model.__name__,
                session_class=type(sync_session).__name__,
            )

        policy = policy_for(sync_session)
        declared = getattr(model, "__capabilities__", Capability.NONE)
        registered = policy.capabilities_of(model)
        if (declared | registered) != registered:
            raise ConfigurationError(
                f"{model.__name__} declares row filters that are not registered",
                entity=model.__name__,
                declared=str(declared),
                registered=str(registered),
            )
        for column_name in policy.hidden_columns(model):
            if column_name not in mapper.columns:
                raise ConfigurationError(
                    f"{model.__name__} is missing hidden column {column_name}",
                    entity=model.__name__,
                )
        return mapper

    def query(self, model: type[ModelT]) -> Select:
        return select(model)

    async def scalars(self, stmt: Select) -> Sequence[Any]:
        result = await self._session.scalars(stmt)
        return result.all()

    async def first(self, stmt: Select) -> Any | None:
        result = await self._session.scalars(stmt.limit(1))
        return result.first()

    async def count(self, stmt: Select) -> int:
        # The outer count only sees a subquery, so the filters go on the
        # inner statement
        sync_session = self._session.sync_session
        policy = policy_for(sync_session)
        ctx = filter_context(sync_session, stmt.get_execution_options())
        entities = {
            description["entity"]
            for description in stmt.column_descriptions
            if description.get("entity") is not None
        }
        for entity in entities:
            stmt = stmt.where(
                *policy.criteria_for(
                    entity,
                    ctx.tenant_id,
                    include_deleted=ctx.include_deleted,
                    all_tenants=ctx.all_tenants,
                )
            )
        inner = stmt.options(*policy.loader_criteria(ctx)).order_by(None).subquery()
        total = await self._session.scalar(select(func.count()).select_from(inner))
        return int(total or 0)

    async def find_by_id(self, model: type[ModelT], key: Any) -> ModelT | None:
        return await self.first(select(model).where(model.id == key))

    def add(self, entity: Any) -> None:
        self._session.add(entity)

    async def merge(self, entity: ModelT) -> ModelT:
        return await self._session.merge(entity)

    async def remove(self, entity: Any) -> None:
        await self._session.delete(entity)

    async def commit(self) -> int:
        session = self._session
        affected = len(session.new) + len(session.dirty) + len(session.deleted)
        await safe_commit(session)
        return affected

    async def rollback(self) -> None:
        await self._session.rollback()
