"""
Module: agreement_kernel.db.types
Responsibility: Column types shared by every agreement model.  Centralizes
    timestamp handling so that models and services agree on how
    values round-trip through the database.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are always timezone-aware UTC when read back, on every
      backend.  SQLite drops tzinfo on storage; UTCDateTime restores it.
"""

from datetime import timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Accepts aware datetimes only.  Stores UTC; returns aware UTC.

    Guarantees:
        - process_bind_param: aware datetime -> UTC datetime.
        - process_result_value: naive (SQLite) or aware -> aware UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Normalize to UTC before storing.

        Raises:
            ValueError: If a naive datetime is bound.
        """
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        """Attach UTC to naive values read back from the database."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

