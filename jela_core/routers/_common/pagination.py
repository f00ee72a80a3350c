"""
Page request parameters for list endpoints.

Usage:
    from jela_core.routers._common.pagination import PageRequest, get_page_request

    @router.get("/notes")
    async def list_notes(
        page: PageRequest = Depends(get_page_request),
        service: CrudService = Depends(crud_service(NOTE_CONFIG)),
    ):
        notes = await service.page(**page.to_kwargs(), projection=NoteOutput)
        return {
            "items": list(notes),
            "pagination": notes.get_pagination_view_model({"q": q}).model_dump(),
        }
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Query

from jela_shared.config.constants import Limits
from jela_shared.config.settings import settings


@dataclass
class PageRequest:
    """
    Requested page with validation.

    Attributes:
        page: 1-indexed page number (>= 1)
        page_size: Rows per page (1 to max_page_size)
        visible_pages: Page links shown by the pagination control (>= 1)
    """

    page: int = Limits.MIN_PAGE
    page_size: int = Limits.DEFAULT_PAGE_SIZE
    visible_pages: int = Limits.DEFAULT_VISIBLE_PAGES
    max_page_size: int = Limits.MAX_PAGE_SIZE

    def __post_init__(self):
        """Clamp values into range."""
        self.page = max(Limits.MIN_PAGE, self.page)
        self.page_size = min(max(Limits.MIN_PAGE_SIZE, self.page_size), self.max_page_size)
        self.visible_pages = max(Limits.MIN_VISIBLE_PAGES, self.visible_pages)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def to_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for CrudService.page()."""
        return {
            "current_page": self.page,
            "page_size": self.page_size,
            "visible_pages": self.visible_pages,
        }


def get_page_request(
    page: int = Query(default=1, description="Page number, starting at 1"),
    page_size: int | None = Query(default=None, description="Rows per page"),
    visible_pages: int | None = Query(default=None, description="Page links to display"),
) -> PageRequest:
    """
    FastAPI dependency for page parameters.

    Out-of-range values are clamped instead of rejected.
    """
    return PageRequest(
        page=page,
        page_size=page_size if page_size is not None else settings.default_page_size,
        visible_pages=visible_pages if visible_pages is not None else settings.default_visible_pages,
        max_page_size=settings.max_page_size,
    )
