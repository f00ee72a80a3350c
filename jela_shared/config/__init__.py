"""
Configuration module: Settings, logging, constants.
"""

from jela_shared.config.settings import settings, get_settings
from jela_shared.config.logging import get_logger, setup_logging
from jela_shared.config.constants import (
    HiddenColumns,
    ExecutionOptions,
    Limits,
    ValidationMessages,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "HiddenColumns",
    "ExecutionOptions",
    "Limits",
    "ValidationMessages",
]
