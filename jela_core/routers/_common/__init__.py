"""
Common utilities shared across routers.
"""

from .pagination import PageRequest, get_page_request

__all__ = [
    "PageRequest",
    "get_page_request",
]
