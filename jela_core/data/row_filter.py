"""
Row filter policy: soft delete and tenant isolation applied to every read.

Entity types declare capabilities (see jela_core.models.Capability). At startup
register_schema()/register_all() adds the hidden columns and their indexes to
the mapped tables and records which capabilities each type carries. At query
time apply_row_filters() (a `do_orm_execute` session listener) attaches one
`with_loader_criteria` option per registered type and capability, so the
predicates also reach joins, relationship loads and lazy loads.

Administrative queries opt out per statement:

    stmt = select(Note).execution_options(include_deleted=True)
    stmt = select(Document).execution_options(all_tenants=True)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Column, Connection, Index, Integer, false, inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import DeclarativeBase, Mapper, ORMExecuteState, with_loader_criteria
from sqlalchemy.sql.expression import ColumnElement

from jela_core.models.base import Capability
from jela_shared.config.constants import ExecutionOptions, HiddenColumns, index_name
from jela_shared.config.logging import data_logger as logger
from jela_shared.infrastructure.tenancy import resolve_tenant
from jela_shared.utils.exceptions import ConfigurationError

# Key under which a session carries its policy (Session.info)
POLICY_KEY = "row_filter_policy"


@dataclass(frozen=True)
class FilterContext:
    """What a single statement is allowed to see."""

    tenant_id: int | None = None
    include_deleted: bool = False
    all_tenants: bool = False


# Criteria are either a lambda taking the mapped class (adapted to aliases and
# cached by SQLAlchemy with closure values as bound parameters) or a constant
# expression.
Criteria = Callable[[type], ColumnElement[bool]] | ColumnElement[bool]
PredicateBuilder = Callable[[FilterContext], Criteria | None]


def _soft_delete_predicate(ctx: FilterContext) -> Criteria | None:
    if ctx.include_deleted:
        return None
    return lambda cls: cls.is_deleted.is_(False)


def _tenant_predicate(ctx: FilterContext) -> Criteria | None:
    if ctx.all_tenants:
        return None
    tenant_id = ctx.tenant_id
    if tenant_id is None:
        # No tenant bound: match nothing
        return false()
    return lambda cls: cls.community_id == tenant_id


def _hidden_column(capability: Capability) -> Column:
    if capability is Capability.SOFT_DELETABLE:
        return Column(
            HiddenColumns.IS_DELETED,
            Boolean,
            nullable=False,
            default=False,
            server_default=false(),
        )
    return Column(HiddenColumns.COMMUNITY_ID, Integer, nullable=False)


# One entry per capability. Builders compose with AND.
_HIDDEN_COLUMN_NAMES: dict[Capability, str] = {
    Capability.SOFT_DELETABLE: HiddenColumns.IS_DELETED,
    Capability.TENANT_SCOPED: HiddenColumns.COMMUNITY_ID,
}
_PREDICATE_BUILDERS: dict[Capability, PredicateBuilder] = {
    Capability.SOFT_DELETABLE: _soft_delete_predicate,
    Capability.TENANT_SCOPED: _tenant_predicate,
}


class RowFilterPolicy:
    """
    Registry of entity types and the row filters that apply to them.

    Usage:
        policy = RowFilterPolicy()
        policy.register_all(Base)              # at startup, before create_all
        factory = make_session_factory(engine, policy)
    """

    def __init__(self) -> None:
        self._capabilities: dict[type, Capability] = {}

    # =========================================================================
    # Registration
    # =========================================================================

    def register_schema(
        self,
        model: type,
        capabilities: Capability | None = None,
    ) -> Capability:
        """
        Add the hidden columns for a type's capabilities and remember them.

        Capabilities default to the model's `__capabilities__` attribute.

        Raises:
            ConfigurationError: The type is not mapped, has no `id`, or was
                already registered with different capabilities.
        """
        if capabilities is None:
            capabilities = getattr(model, "__capabilities__", Capability.NONE)

        existing = self._capabilities.get(model)
        if existing is not None:
            if existing == capabilities:
                return existing
            raise ConfigurationError(
                f"{model.__name__} is already registered with other capabilities",
                entity=model.__name__,
                registered=str(existing),
                requested=str(capabilities),
            )

        mapper = self._mapper_for(model)
        if "id" not in mapper.attrs:
            raise ConfigurationError(
                f"{model.__name__} has no 'id' attribute",
                entity=model.__name__,
            )

        for capability, column_name in _HIDDEN_COLUMN_NAMES.items():
            if capability in capabilities:
                self._add_hidden_column(model, mapper, capability, column_name)

        self._capabilities[model] = capabilities
        logger.debug(
            "Registered row filters",
            entity=model.__name__,
            capabilities=str(capabilities),
        )
        return capabilities

    def register_all(self, base: type[DeclarativeBase]) -> list[type]:
        """Register every mapped class of `base` that declares capabilities."""
        registered = []
        for mapper in base.registry.mappers:
            model = mapper.class_
            capabilities = getattr(model, "__capabilities__", Capability.NONE)
            if capabilities:
                self.register_schema(model, capabilities)
                registered.append(model)
        return registered

    @staticmethod
    def _mapper_for(model: type) -> Mapper:
        try:
            return sa_inspect(model)
        except NoInspectionAvailable:
            raise ConfigurationError(
                f"{getattr(model, '__name__', model)!s} is not a mapped class",
            ) from None

    @staticmethod
    def _add_hidden_column(
        model: type,
        mapper: Mapper,
        capability: Capability,
        column_name: str,
    ) -> None:
        table = mapper.local_table
        if column_name in mapper.columns:
            # Already mapped, by the model itself or an earlier policy
            column = mapper.columns[column_name]
        elif column_name in table.c:
            raise ConfigurationError(
                f"{table.name}.{column_name} exists but is not mapped",
                entity=model.__name__,
            )
        else:
            # Declarative intercepts the assignment and maps the column
            setattr(model, column_name, _hidden_column(capability))
            column = table.c[column_name]

        name = index_name(table.name, column_name)
        if not any(index.name == name for index in table.indexes):
            Index(name, column)

    # =========================================================================
    # Lookups
    # =========================================================================

    def capabilities_of(self, model: type) -> Capability:
        """Registered capabilities of `model` or of its closest registered base."""
        for klass in model.__mro__:
            capabilities = self._capabilities.get(klass)
            if capabilities is not None:
                return capabilities
        return Capability.NONE

    def is_soft_deletable(self, model: type) -> bool:
        return Capability.SOFT_DELETABLE in self.capabilities_of(model)

    def is_tenant_scoped(self, model: type) -> bool:
        return Capability.TENANT_SCOPED in self.capabilities_of(model)

    def is_registered(self, model: type) -> bool:
        return model in self._capabilities

    @property
    def models(self) -> list[type]:
        return list(self._capabilities)

    def hidden_columns(self, model: type) -> list[str]:
        """Names of the hidden columns `model` carries."""
        capabilities = self.capabilities_of(model)
        return [
            column_name
            for capability, column_name in _HIDDEN_COLUMN_NAMES.items()
            if capability in capabilities
        ]

    # =========================================================================
    # Predicates
    # =========================================================================

    def criteria_for(
        self,
        model: type,
        tenant_id: int | None = None,
        *,
        include_deleted: bool = False,
        all_tenants: bool = False,
    ) -> list[ColumnElement[bool]]:
        """
        Filter expressions for `model`, to be combined with AND.

        Usable directly in a WHERE clause: `stmt.where(*policy.criteria_for(Note))`.
        """
        ctx = FilterContext(tenant_id, include_deleted, all_tenants)
        clauses = []
        for criteria in self._criteria(model, ctx):
            clauses.append(criteria(model) if callable(criteria) else criteria)
        return clauses

    def loader_criteria(self, ctx: FilterContext) -> list[Any]:
        """`with_loader_criteria` options for every registered type."""
        options = []
        for model in self._capabilities:
            for criteria in self._criteria(model, ctx):
                options.append(
                    with_loader_criteria(model, criteria, include_aliases=True)
                )
        return options

    def _criteria(self, model: type, ctx: FilterContext) -> Iterable[Criteria]:
        capabilities = self.capabilities_of(model)
        for capability, builder in _PREDICATE_BUILDERS.items():
            if capability in capabilities:
                criteria = builder(ctx)
                if criteria is not None:
                    yield criteria

    # =========================================================================
    # Startup check
    # =========================================================================

    def verify_schema(self, connection: Connection) -> None:
        """
        Check that every registered table in the live database has its
        hidden columns.

        Run from an async engine with `await conn.run_sync(policy.verify_schema)`.

        Raises:
            ConfigurationError: Listing every missing table or column.
        """
        inspector = sa_inspect(connection)
        missing = []
        for model in self._capabilities:
            table = sa_inspect(model).local_table
            if not inspector.has_table(table.name, schema=table.schema):
                missing.append(table.name)
                continue
            present = {
                column["name"]
                for column in inspector.get_columns(table.name, schema=table.schema)
            }
            for column_name in self.hidden_columns(model):
                if column_name not in present:
                    missing.append(f"{table.name}.{column_name}")

        if missing:
            raise ConfigurationError(
                "Row filter columns missing from database",
                missing=missing,
            )


# Default policy used by sessions that do not carry one
row_filter_policy = RowFilterPolicy()


def policy_for(session: Any) -> RowFilterPolicy:
    """The policy attached to a (sync) session, or the default one."""
    return session.info.get(POLICY_KEY, row_filter_policy)


def filter_context(session: Any, execution_options: Any = None) -> FilterContext:
    """Build the filter context from the session's tenant and statement options."""
    options = execution_options or {}
    return FilterContext(
        tenant_id=resolve_tenant(session.info),
        include_deleted=bool(options.get(ExecutionOptions.INCLUDE_DELETED, False)),
        all_tenants=bool(options.get(ExecutionOptions.ALL_TENANTS, False)),
    )


def apply_row_filters(execute_state: ORMExecuteState) -> None:
    """
    `do_orm_execute` listener adding the row filters to top-level SELECTs.

    Column loads (refresh, deferred attributes) are left alone. Relationship
    loads already carry the criteria of the statement that loaded the parent.
    """
    if (
        not execute_state.is_select
        or execute_state.is_column_load
        or execute_state.is_relationship_load
    ):
        return

    session = execute_state.session
    policy = policy_for(session)
    ctx = filter_context(session, execute_state.execution_options)
    options = policy.loader_criteria(ctx)
    if options:
        execute_state.statement = execute_state.statement.options(*options)
