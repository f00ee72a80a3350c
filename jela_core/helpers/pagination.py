"""
Paginated lists built from a (row filtered) select statement.

Usage:
    page = await PaginatedViewList.create(storage, select(Note), current_page=3,
                                          page_size=20, visible_pages=5)
    page.first_row_on_page          # 41
    page.get_pagination_view_model({"q": "draft"}).url_vars_with_page(4)
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from jela_core.data.storage import SqlAlchemyStorage, StorageProvider
from jela_shared.config.constants import Limits

T = TypeVar("T")

Projection = Callable[[Any], Any] | type[BaseModel]


def apply_projection(item: Any, projection: Projection | None) -> Any:
    """Map an entity through a callable or a pydantic model class."""
    if projection is None:
        return item
    if isinstance(projection, type) and issubclass(projection, BaseModel):
        return projection.model_validate(item, from_attributes=True)
    return projection(item)


def _as_storage(source: StorageProvider | AsyncSession) -> StorageProvider:
    if isinstance(source, AsyncSession):
        return SqlAlchemyStorage(source)
    return source


class PaginatedList(list, Generic[T]):
    """One page of rows plus the numbers describing the whole result."""

    def __init__(
        self,
        items: Iterable[T],
        row_count: int,
        current_page: int,
        page_size: int,
    ):
        super().__init__(items)
        self.row_count = row_count
        self.current_page = max(current_page, Limits.MIN_PAGE)
        self.page_size = max(page_size, Limits.MIN_PAGE_SIZE)
        self.page_count = math.ceil(self.row_count / self.page_size)

    @classmethod
    async def create(
        cls,
        source: StorageProvider | AsyncSession,
        stmt: Select,
        current_page: int,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
        projection: Projection | None = None,
        **kwargs: Any,
    ):
        """Count the rows of `stmt` and fetch the requested page."""
        storage = _as_storage(source)
        current_page = max(current_page, Limits.MIN_PAGE)
        page_size = max(page_size, Limits.MIN_PAGE_SIZE)

        row_count = await storage.count(stmt)
        rows = await storage.scalars(
            stmt.offset((current_page - 1) * page_size).limit(page_size)
        )
        items = [apply_projection(row, projection) for row in rows]
        return cls(items, row_count, current_page, page_size, **kwargs)

    @property
    def has_previous_page(self) -> bool:
        return self.current_page > 1

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.page_count

    @property
    def first_row_on_page(self) -> int:
        return min((self.current_page - 1) * self.page_size + 1, self.last_row_on_page)

    @property
    def last_row_on_page(self) -> int:
        return min(self.current_page * self.page_size, self.row_count)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}(page={self.current_page}/{self.page_count}, "
            f"rows={self.row_count}, items={len(self)})>"
        )


class PaginationViewModel(BaseModel):
    """Everything a pagination control needs to render itself."""

    has_previous_page: bool
    has_next_page: bool
    first_row_on_page: int
    last_row_on_page: int
    first_visible_page: int
    last_visible_page: int
    current_page: int
    page_size: int
    page_count: int
    row_count: int
    visible_pages: int
    url_vars: dict[str, Any] = Field(default_factory=dict)
    view_name: str | None = None
    ajax_dest: str | None = None

    def url_vars_with_page(self, page: int) -> dict[str, Any]:
        """Link parameters for `page`, keeping the other url vars."""
        return {**self.url_vars, "page": page}


class PaginatedViewList(PaginatedList[T]):
    """PaginatedList that also knows which page links to show."""

    def __init__(
        self,
        items: Iterable[T],
        row_count: int,
        current_page: int,
        page_size: int,
        visible_pages: int = Limits.DEFAULT_VISIBLE_PAGES,
    ):
        super().__init__(items, row_count, current_page, page_size)
        self.visible_pages = max(visible_pages, Limits.MIN_VISIBLE_PAGES)

    @classmethod
    async def create(
        cls,
        source: StorageProvider | AsyncSession,
        stmt: Select,
        current_page: int,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
        projection: Projection | None = None,
        visible_pages: int = Limits.DEFAULT_VISIBLE_PAGES,
    ):
        return await super().create(
            source,
            stmt,
            current_page,
            page_size,
            projection,
            visible_pages=visible_pages,
        )

    @property
    def first_visible_page(self) -> int:
        # Center on the current page, shift back near the end, never below 1
        first = self.current_page - self.visible_pages // 2
        first = min(self.page_count + 1 - self.visible_pages, first)
        return max(1, first)

    @property
    def last_visible_page(self) -> int:
        return min(self.first_visible_page + self.visible_pages - 1, self.page_count)

    def get_pagination_view_model(
        self,
        url_vars: Mapping[str, Any] | BaseModel | object | None = None,
        view: str | None = None,
        ajax_dest: str | None = None,
    ) -> PaginationViewModel:
        return PaginationViewModel(
            has_previous_page=self.has_previous_page,
            has_next_page=self.has_next_page,
            first_row_on_page=self.first_row_on_page,
            last_row_on_page=self.last_row_on_page,
            first_visible_page=self.first_visible_page,
            last_visible_page=self.last_visible_page,
            current_page=self.current_page,
            page_size=self.page_size,
            page_count=self.page_count,
            row_count=self.row_count,
            visible_pages=self.visible_pages,
            url_vars=_url_vars_dict(url_vars),
            view_name=view,
            ajax_dest=ajax_dest,
        )


def _url_vars_dict(url_vars: Any) -> dict[str, Any]:
    if url_vars is None:
        return {}
    if isinstance(url_vars, Mapping):
        return dict(url_vars)
    if isinstance(url_vars, BaseModel):
        return url_vars.model_dump()
    return dict(vars(url_vars))
