"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Image or PDF libraries
- I/O

All domain objects are immutable; time comes in through a Clock.
"""

from agreement_kernel.domain.agreement import (
    AGREEMENT_TRANSITIONS,
    TERMINAL_AGREEMENT_STATUSES,
    AgreementRecord,
    AgreementStatus,
    AgreementView,
    DocumentRef,
    Role,
    SignatureRef,
    SigningPolicy,
    ViewStatus,
    can_transition,
    pending_status_for,
)
from agreement_kernel.domain.audit import AuditAction, AuditEventRecord
from agreement_kernel.domain.booking import (
    BookingProvider,
    BookingSnapshot,
    InMemoryBookingProvider,
    PropertySnapshot,
)
from agreement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from agreement_kernel.domain.document import (
    DEFAULT_FILENAME_TEMPLATE,
    DocumentRequest,
)
from agreement_kernel.domain.signature import (
    PNG_MEDIA_TYPE,
    CaptureSettings,
    Point,
    SignatureArtifact,
    Stroke,
    content_hash,
)

__all__ = [
    # State machine
    "AGREEMENT_TRANSITIONS",
    "TERMINAL_AGREEMENT_STATUSES",
    "AgreementStatus",
    "ViewStatus",
    "Role",
    "SigningPolicy",
    "can_transition",
    "pending_status_for",
    # Records
    "AgreementRecord",
    "AgreementView",
    "DocumentRef",
    "SignatureRef",
    "AuditAction",
    "AuditEventRecord",
    # Bookings
    "BookingProvider",
    "BookingSnapshot",
    "InMemoryBookingProvider",
    "PropertySnapshot",
    # Signatures and documents
    "CaptureSettings",
    "PNG_MEDIA_TYPE",
    "Point",
    "SignatureArtifact",
    "Stroke",
    "content_hash",
    "DEFAULT_FILENAME_TEMPLATE",
    "DocumentRequest",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
]
