"""
Base class, capability flags and the JelaModel mixin for all ORM models.
"""

from __future__ import annotations

from enum import Flag, auto
from typing import ClassVar

from sqlalchemy import Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Capability(Flag):
    """
    Row filtering capabilities an entity type can carry.

    - SOFT_DELETABLE: deletes become `is_deleted = true`, reads skip deleted rows
    - TENANT_SCOPED: rows carry `community_id`, reads see the current tenant only
    """

    NONE = 0
    SOFT_DELETABLE = auto()
    TENANT_SCOPED = auto()


class JelaModel:
    """
    Mixin providing the `id` primary key every service-managed entity needs.

    Capabilities are declared with `__capabilities__` and picked up by
    RowFilterPolicy.register_all() at startup:

        class Note(JelaModel, Base):
            __tablename__ = "notes"
            __capabilities__ = Capability.SOFT_DELETABLE
    """

    __capabilities__: ClassVar[Capability] = Capability.NONE

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        id_val = getattr(self, "id", None)
        if getattr(self, "is_deleted", False):
            return f"<{class_name}(id={id_val}, deleted)>"
        return f"<{class_name}(id={id_val})>"
