"""
ORM model base classes.
"""

from jela_core.models.base import Base, Capability, JelaModel

__all__ = [
    "Base",
    "Capability",
    "JelaModel",
]
