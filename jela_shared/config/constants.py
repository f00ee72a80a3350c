"""
Centralized constants for the library.

Usage:
    from jela_shared.config.constants import HiddenColumns, Limits

    if HiddenColumns.IS_DELETED in table.c:
        ...
"""

from typing import Final


# =============================================================================
# Hidden Columns
# =============================================================================


class HiddenColumns:
    """Columns added to mapped tables by the row filter policy."""

    IS_DELETED: Final[str] = "is_deleted"
    COMMUNITY_ID: Final[str] = "community_id"

    ALL: Final[frozenset[str]] = frozenset({IS_DELETED, COMMUNITY_ID})


def index_name(table_name: str, column_name: str) -> str:
    """Name of the secondary index backing a hidden column."""
    return f"IX_{table_name}_{column_name}"


# =============================================================================
# Execution Options
# =============================================================================


class ExecutionOptions:
    """Per-statement execution options understood by the row filter."""

    INCLUDE_DELETED: Final[str] = "include_deleted"
    ALL_TENANTS: Final[str] = "all_tenants"


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Pagination and validation limits."""

    MIN_PAGE: Final[int] = 1
    MIN_PAGE_SIZE: Final[int] = 1
    MIN_VISIBLE_PAGES: Final[int] = 1
    DEFAULT_PAGE_SIZE: Final[int] = 50
    DEFAULT_VISIBLE_PAGES: Final[int] = 5
    MAX_PAGE_SIZE: Final[int] = 200


# =============================================================================
# Validation Messages
# =============================================================================


class ValidationMessages:
    """Messages recorded by the built-in model validation."""

    REQUIRED: Final[str] = "This field is required."
    MAX_LENGTH: Final[str] = "Ensure this value has at most {max_length} characters."


# Key used for errors that do not belong to a single field
ENTITY_LEVEL_KEY: Final[str] = ""
