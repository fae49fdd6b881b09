"""
Module: agreement_kernel.models.audit_event
Responsibility: ORM persistence for the per-agreement audit trail.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - UNIQUE(agreement_id, seq): events of one agreement are totally
      ordered, and two writers racing on the same agreement cannot both
      append the same position.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from agreement_kernel.db.base import Base, UUIDString
from agreement_kernel.domain.audit import AuditAction, AuditEventRecord
from agreement_kernel.exceptions import ImmutabilityViolationError


class AgreementAuditEventModel(Base):
    """
    One auditable action on one agreement.

    Contract:
        Rows are written in the same transaction as the agreement change
        they describe, so the trail never records a change that rolled back.
    """

    __tablename__ = "agreement_audit_events"

    __table_args__ = (
        UniqueConstraint("agreement_id", "seq", name="uq_agreement_audit_seq"),
        Index("idx_agreement_audit_booking", "booking_id"),
        Index("idx_agreement_audit_action", "action"),
    )

    agreement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Position within this agreement's trail, starting at 1
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(10), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AgreementAuditEvent #{self.seq} {self.action} on {self.booking_id}>"

    def to_record(self) -> AuditEventRecord:
        return AuditEventRecord(
            event_id=self.id,
            agreement_id=self.agreement_id,
            booking_id=self.booking_id,
            action=AuditAction(self.action),
            occurred_at=self.occurred_at,
            payload_hash=self.payload_hash,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            payload=dict(self.payload or {}),
        )


@event.listens_for(AgreementAuditEventModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Raises: ImmutabilityViolationError always."""
    raise ImmutabilityViolationError(
        entity_type="AgreementAuditEvent",
        entity_id=str(target.id),
        reason="audit events are append-only - cannot modify",
    )


@event.listens_for(AgreementAuditEventModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Raises: ImmutabilityViolationError always."""
    raise ImmutabilityViolationError(
        entity_type="AgreementAuditEvent",
        entity_id=str(target.id),
        reason="audit events are append-only - cannot delete",
    )
