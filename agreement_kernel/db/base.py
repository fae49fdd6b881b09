"""
Declarative base for the agreement tables.

Every model gets a uuid4 primary key stored as a 36-character string, so
the schema is identical on SQLite and PostgreSQL. ``datetime`` columns map
to ``UTCDateTime``. Timestamps are written from the injected Clock, never
by a server default, so tests stay deterministic.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from agreement_kernel.db.types import UTCDateTime


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Adds ``created_at`` and ``updated_at``.

    Services set both from their Clock. ``created_at`` is written once;
    ``updated_at`` moves with every state transition.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


__all__ = ["Base", "TimestampedBase", "UUID", "UUIDString"]
