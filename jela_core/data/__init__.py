"""
Data layer: row filter policy, save interceptor, session wiring and the
storage provider used by CRUD services.
"""

from jela_core.data.context import (
    JelaSession,
    make_session_factory,
    make_sync_session_factory,
)
from jela_core.data.row_filter import (
    FilterContext,
    RowFilterPolicy,
    apply_row_filters,
    policy_for,
    row_filter_policy,
)
from jela_core.data.save_interceptor import intercept_flush, restore
from jela_core.data.storage import SqlAlchemyStorage, StorageProvider

__all__ = [
    # Session wiring
    "JelaSession",
    "make_session_factory",
    "make_sync_session_factory",
    # Row filters
    "FilterContext",
    "RowFilterPolicy",
    "apply_row_filters",
    "policy_for",
    "row_filter_policy",
    # Save interceptor
    "intercept_flush",
    "restore",
    # Storage
    "SqlAlchemyStorage",
    "StorageProvider",
]
