"""
Collection helpers.
"""

from jela_core.helpers.pagination import (
    PaginatedList,
    PaginatedViewList,
    PaginationViewModel,
    apply_projection,
)

__all__ = [
    "PaginatedList",
    "PaginatedViewList",
    "PaginationViewModel",
    "apply_projection",
]
