"""
Generic CRUD service.

Every entity type gets the same list/read/create/update/delete pipeline over a
StorageProvider. Per-type behaviour (DTO mapping, standardization, custom
validation, extra query options, permission checks) is supplied through
CrudConfig instead of subclassing.

Write operations report success as a bool. Validation problems are recorded in
the service's ValidationSink, persistence problems are logged and rolled back.
Nothing from the storage layer escapes the service.

Usage:
    config = CrudConfig(
        model=Note,
        dto_schema=NoteInput,
        standardize=lambda note: note,
        validate=check_note_title,
    )
    service = CrudService(config, SqlAlchemyStorage(db), ValidationSink())

    if not await service.create({"title": "Groceries"}):
        return service.validation.to_dict()
    notes = await service.list_all(projection=NoteOutput)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import Select, String, inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapper

from jela_core.data.storage import StorageProvider
from jela_core.helpers.pagination import PaginatedViewList, Projection, apply_projection
from jela_core.services.validation import ValidationSink
from jela_shared.config.constants import ENTITY_LEVEL_KEY, HiddenColumns, ValidationMessages
from jela_shared.config.logging import StructuredLogger, get_logger
from jela_shared.config.settings import settings
from jela_shared.utils.exceptions import ConfigurationError

ModelT = TypeVar("ModelT")
KeyT = TypeVar("KeyT")

# Marker for reads that are not narrowed to one id
_ALL_ROWS = object()


class Action(str, Enum):
    """Operations a permission hook is asked about."""

    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


PermissionHook = Callable[[Action], Awaitable[None] | None]


@dataclass
class CrudConfig(Generic[ModelT]):
    """Per-entity customization of CrudService."""

    # Required
    model: type[ModelT]

    # Human-readable name for log messages (defaults to the class name)
    entity_name: str | None = None

    # Optional pydantic schema the incoming DTO is validated against
    dto_schema: type[BaseModel] | None = None

    # DTO -> entity. Default copies matching mapped columns.
    parse_from_dto: Callable[[Any], ModelT] | None = None

    # Entity -> entity, before validation (trim strings, normalize case, ...)
    standardize: Callable[[ModelT], ModelT] | None = None

    # Custom validation, records into the sink
    validate: Callable[[ModelT, ValidationSink], None] | None = None

    # Extra query options for reads (eager loads, ordering, joins)
    query_extras: Callable[[Select], Select] | None = None

    # Raises ForbiddenError to deny an action
    check_permission: PermissionHook | None = None

    def __post_init__(self):
        if self.entity_name is None:
            self.entity_name = self.model.__name__


class CrudService(Generic[ModelT, KeyT]):
    """
    CRUD pipeline for one entity type.

    The storage provider applies soft delete and tenant filters to every read
    and turns deletes of soft-deletable types into updates. The service only
    ever sees rows the caller is allowed to see.
    """

    def __init__(
        self,
        config: CrudConfig[ModelT],
        storage: StorageProvider,
        validation: ValidationSink | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._config = config
        self._model = config.model
        self._storage = storage
        self._validation = validation if validation is not None else ValidationSink()
        self._logger = logger if logger is not None else get_logger(__name__)
        self._mapper: Mapper | None = None

        if not self.set_active_collection():
            self._logger.error(
                "Unable to set active collection for service",
                entity=self.entity_name,
            )

    @property
    def model(self) -> type[ModelT]:
        return self._model

    @property
    def entity_name(self) -> str:
        return self._config.entity_name or self._model.__name__

    @property
    def storage(self) -> StorageProvider:
        return self._storage

    @property
    def validation(self) -> ValidationSink:
        return self._validation

    def bind_validation(self, sink: ValidationSink) -> None:
        """Record future validation errors into `sink`."""
        self._validation = sink

    def set_active_collection(self) -> bool:
        """(Re)bind the service to the storage collection of its model."""
        try:
            self._mapper = self._storage.collection(self._model)
        except ConfigurationError:
            self._mapper = None
            return False
        return True

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def list_all(self, projection: Projection | None = None) -> list[Any]:
        """Every visible entity, optionally projected."""
        await self._check_permission(Action.LIST)
        try:
            entities = await self._storage.scalars(self._read_query())
        except (SQLAlchemyError, ConfigurationError) as e:
            self._logger.warning(
                f"Unable to list {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            return []
        return [apply_projection(entity, projection) for entity in entities]

    async def read(self, entity_id: KeyT, projection: Projection | None = None) -> Any | None:
        """Entity with `entity_id` if it is visible, else None."""
        await self._check_permission(Action.READ)
        try:
            entity = await self._storage.first(self._read_query(entity_id))
        except (SQLAlchemyError, ConfigurationError) as e:
            self._logger.warning(
                f"Unable to read {self.entity_name}",
                entity=self.entity_name,
                entity_id=entity_id,
                error=str(e),
            )
            return None
        if entity is None:
            return None
        return apply_projection(entity, projection)

    async def count(self) -> int:
        """Number of visible entities."""
        await self._check_permission(Action.LIST)
        try:
            return await self._storage.count(self._read_query())
        except (SQLAlchemyError, ConfigurationError) as e:
            self._logger.warning(
                f"Unable to count {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            return 0

    async def page(
        self,
        current_page: int = 1,
        page_size: int | None = None,
        visible_pages: int | None = None,
        projection: Projection | None = None,
    ) -> PaginatedViewList:
        """One page of visible entities."""
        await self._check_permission(Action.LIST)
        if page_size is None:
            page_size = settings.default_page_size
        if visible_pages is None:
            visible_pages = settings.default_visible_pages
        page_size = min(page_size, settings.max_page_size)
        try:
            return await PaginatedViewList.create(
                self._storage,
                self._read_query().order_by(self._model.id),
                current_page,
                page_size,
                projection,
                visible_pages=visible_pages,
            )
        except (SQLAlchemyError, ConfigurationError) as e:
            self._logger.warning(
                f"Unable to page {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            return PaginatedViewList([], 0, current_page, page_size, visible_pages)

    def _read_query(self, entity_id: Any = _ALL_ROWS) -> Select:
        if self._mapper is None:
            raise ConfigurationError(
                f"No active collection for {self.entity_name}",
                entity=self.entity_name,
            )
        stmt = self._storage.query(self._model)
        if self._config.query_extras is not None:
            stmt = self._config.query_extras(stmt)
        if entity_id is not _ALL_ROWS:
            stmt = stmt.where(self._model.id == entity_id)
        return stmt

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def create(self, dto: Any) -> bool:
        """
        Create a new entity from `dto`.

        Any id carried by the DTO is ignored, storage assigns one.

        Returns:
            True when the entity was persisted. False when validation failed
            (errors are in the sink) or persisting failed (logged).
        """
        await self._check_permission(Action.CREATE)

        entity = self._parse(dto)
        if entity is None:
            return False
        entity.id = None
        entity = self._prepare(entity)
        if entity is None:
            return False

        try:
            if self._mapper is None:
                raise ConfigurationError(f"No active collection for {self.entity_name}")
            self._storage.add(entity)
            await self._storage.commit()
        except asyncio.CancelledError:
            await self._rollback()
            raise
        except Exception as e:
            self._logger.warning(
                f"Unable to create new instance of {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            await self._rollback()
            return False
        return True

    async def update(self, dto: Any) -> bool:
        """
        Update the visible entity identified by the DTO's id.

        Attributes the DTO does not carry keep their stored values. When the
        target is not visible the input is still checked, limited to the
        attributes it sets, so the sink reports what is wrong with it.

        Returns:
            False when the entity is not visible (nothing logged), when
            validation failed, or when persisting failed.
        """
        await self._check_permission(Action.UPDATE)

        entity = self._parse(dto)
        if entity is None:
            return False

        try:
            existing = None
            if entity.id is not None:
                existing = await self._storage.first(self._read_query(entity.id))
            if existing is None:
                self._prepare(entity, partial=True)
                return False

            self._fill_unset(entity, existing)
            entity = self._prepare(entity)
            if entity is None:
                return False

            await self._storage.merge(entity)
            await self._storage.commit()
        except asyncio.CancelledError:
            await self._rollback()
            raise
        except Exception as e:
            self._logger.warning(
                f"Unable to update instance of {self.entity_name}",
                entity=self.entity_name,
                entity_id=getattr(entity, "id", None),
                error=str(e),
            )
            await self._rollback()
            return False
        return True

    async def delete(self, entity_id: KeyT) -> bool:
        """
        Delete the visible entity with `entity_id`.

        Soft-deletable types are only marked deleted.

        Returns:
            False when the entity is not visible or persisting failed.
        """
        await self._check_permission(Action.DELETE)

        try:
            entity = await self._storage.first(self._read_query(entity_id))
            if entity is None:
                return False
            await self._storage.remove(entity)
            await self._storage.commit()
        except asyncio.CancelledError:
            await self._rollback()
            raise
        except Exception as e:
            self._logger.warning(
                f"Unable to delete instance of {self.entity_name}",
                entity=self.entity_name,
                entity_id=entity_id,
                error=str(e),
            )
            await self._rollback()
            return False
        return True

    # =========================================================================
    # Pipeline Steps
    # =========================================================================

    async def _check_permission(self, action: Action) -> None:
        hook = self._config.check_permission
        if hook is None:
            return
        result = hook(action)
        if inspect.isawaitable(result):
            await result

    def _parse(self, dto: Any) -> ModelT | None:
        """DTO -> transient entity. Returns None (with errors recorded) on failure."""
        schema = self._config.dto_schema
        if schema is not None and not isinstance(dto, schema):
            try:
                dto = schema.model_validate(dto)
            except PydanticValidationError as e:
                self._validation.add_pydantic_errors(e)
                return None

        try:
            if self._config.parse_from_dto is not None:
                entity = self._config.parse_from_dto(dto)
            else:
                entity = self._default_parse(dto)
            if not isinstance(entity, self._model):
                raise TypeError(
                    f"Mapping returned {type(entity).__name__}, expected {self.entity_name}"
                )
            return entity
        except Exception as e:
            self._logger.warning(
                f"Unable to map input to {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            self._validation.add_error(ENTITY_LEVEL_KEY, str(e))
            return None

    def _default_parse(self, dto: Any) -> ModelT:
        if isinstance(dto, BaseModel):
            data = dto.model_dump(exclude_unset=True)
        elif isinstance(dto, Mapping):
            data = dict(dto)
        elif is_dataclass(dto) and not isinstance(dto, type):
            data = asdict(dto)
        else:
            data = vars(dto)

        columns = {attr.key for attr in sa_inspect(self._model).column_attrs}
        values = {
            key: value
            for key, value in data.items()
            if key in columns and key not in HiddenColumns.ALL
        }
        return self._model(**values)

    def _prepare(self, entity: ModelT, partial: bool = False) -> ModelT | None:
        """
        Standardize and validate. Returns None when the entity is not valid.

        Exceptions raised by the configured hooks are recorded as an
        entity-level error.
        """
        try:
            entity = self._standardize(entity)
            valid = self._validate(entity, partial)
        except Exception as e:
            self._logger.warning(
                f"Unable to validate {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
            self._validation.add_error(ENTITY_LEVEL_KEY, str(e))
            return None
        return entity if valid else None

    def _standardize(self, entity: ModelT) -> ModelT:
        if self._config.standardize is None:
            return entity
        return self._config.standardize(entity)

    def _fill_unset(self, entity: ModelT, existing: ModelT) -> None:
        """Copy stored column values the DTO did not set onto `entity`."""
        state = sa_inspect(entity)
        for attr in sa_inspect(self._model).column_attrs:
            if attr.key in HiddenColumns.ALL or attr.key in state.dict:
                continue
            setattr(entity, attr.key, getattr(existing, attr.key))

    def _validate(self, entity: ModelT, partial: bool = False) -> bool:
        """
        Built-in column checks plus the configured validation hook.

        With `partial`, only attributes set on the entity are checked.
        Returns the sink's overall validity, so errors recorded earlier in
        the same request also fail the operation.
        """
        state = sa_inspect(entity)
        for attr in sa_inspect(self._model).column_attrs:
            if attr.key in HiddenColumns.ALL:
                continue
            if partial and attr.key not in state.dict:
                continue
            column = attr.columns[0]
            if column.primary_key:
                continue
            value = getattr(entity, attr.key, None)
            if value is None:
                if not column.nullable and column.default is None and column.server_default is None:
                    self._validation.add_error(attr.key, ValidationMessages.REQUIRED)
            elif isinstance(column.type, String) and column.type.length:
                if isinstance(value, str) and len(value) > column.type.length:
                    self._validation.add_error(
                        attr.key,
                        ValidationMessages.MAX_LENGTH.format(max_length=column.type.length),
                    )

        if self._config.validate is not None:
            self._config.validate(entity, self._validation)
        return self._validation.is_valid

    async def _rollback(self) -> None:
        try:
            await self._storage.rollback()
        except SQLAlchemyError as e:
            self._logger.error(
                f"Rollback failed for {self.entity_name}",
                entity=self.entity_name,
                error=str(e),
            )
