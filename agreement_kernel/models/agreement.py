"""
Module: agreement_kernel.models.agreement
Responsibility: ORM persistence for the one-per-booking agreement record.
Architecture position: Kernel > Models.  May import from db/ and domain/
    (for the record it maps to).

Invariants enforced:
    - UNIQUE(booking_id): at most one agreement per booking.
    - CHECK constraints mirror AgreementRecord.check_invariants so that a
      raw-SQL writer cannot store a record the workflow could never produce.
    - ``version`` is the compare-and-swap token; it starts at 1 and only
      the agreement store advances it.

Failure modes:
    - IntegrityError on a second INSERT for the same booking (translated
      to ConflictError by the store).
    - IntegrityError on a CHECK violation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agreement_kernel.db.base import TimestampedBase, UUIDString
from agreement_kernel.domain.agreement import (
    AgreementRecord,
    AgreementStatus,
    DocumentRef,
    Role,
    SignatureRef,
)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in AgreementStatus)


class AgreementModel(TimestampedBase):
    """
    Persistent agreement record.  Mutable, but only through the store.

    Contract:
        The row's ``id`` is the agreement id.  Signature columns hold
        references into signature_artifacts, never image bytes.

    Guarantees:
        - Never stored in NOT_INITIALIZED.
        - Document columns are set only while COMPLETED.
        - error_reason is set exactly when ERROR.
    """

    __tablename__ = "agreements"

    __table_args__ = (
        Index("idx_agreements_status", "status"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_agreements_status"),
        CheckConstraint("status <> 'NOT_INITIALIZED'", name="ck_agreements_initialized"),
        CheckConstraint("first_signer IN ('tenant', 'landlord')", name="ck_agreements_first_signer"),
        CheckConstraint(
            "document_ref IS NULL OR status = 'COMPLETED'",
            name="ck_agreements_document_completed",
        ),
        CheckConstraint(
            "(status = 'ERROR') = (error_reason IS NOT NULL)",
            name="ck_agreements_error_reason",
        ),
        CheckConstraint(
            "status = 'ERROR'"
            " OR (status IN ('PENDING_LANDLORD', 'COMPLETED') AND tenant_artifact_id IS NOT NULL)"
            " OR (status = 'PENDING_TENANT' AND tenant_artifact_id IS NULL)",
            name="ck_agreements_tenant_signature",
        ),
        CheckConstraint(
            "status = 'ERROR'"
            " OR (status IN ('PENDING_TENANT', 'COMPLETED') AND landlord_artifact_id IS NOT NULL)"
            " OR (status = 'PENDING_LANDLORD' AND landlord_artifact_id IS NULL)",
            name="ck_agreements_landlord_signature",
        ),
        CheckConstraint("version >= 1", name="ck_agreements_version"),
        CheckConstraint("document_attempts >= 0", name="ck_agreements_attempts"),
    )

    booking_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False)

    # Captured at creation; later policy changes never reorder this agreement
    first_signer: Mapped[str] = mapped_column(String(10), nullable=False)

    # Tenant signature reference
    tenant_artifact_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    tenant_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    tenant_signature_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tenant_actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Landlord signature reference
    landlord_artifact_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    landlord_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    landlord_signature_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    landlord_actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Final document
    document_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    document_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document_media_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    document_generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    document_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_document_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    error_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Agreement {self.booking_id} {self.status} v{self.version}>"

    # =========================================================================
    # Domain mapping
    # =========================================================================

    def to_record(self) -> AgreementRecord:
        """Convert ORM model to the domain record."""
        document = None
        if self.document_ref is not None:
            document = DocumentRef(
                ref=self.document_ref,
                filename=self.document_filename or "",
                content_hash=self.document_hash or "",
                generated_at=self.document_generated_at,
                media_type=self.document_media_type or "application/pdf",
            )
        return AgreementRecord(
            agreement_id=self.id,
            booking_id=self.booking_id,
            status=AgreementStatus(self.status),
            first_signer=Role(self.first_signer),
            created_at=self.created_at,
            updated_at=self.updated_at,
            tenant_signature=_signature_ref(
                Role.TENANT,
                self.tenant_artifact_id,
                self.tenant_signed_at,
                self.tenant_signature_hash,
                self.tenant_actor_id,
            ),
            landlord_signature=_signature_ref(
                Role.LANDLORD,
                self.landlord_artifact_id,
                self.landlord_signed_at,
                self.landlord_signature_hash,
                self.landlord_actor_id,
            ),
            document=document,
            document_attempts=self.document_attempts,
            last_document_error=self.last_document_error,
            error_reason=self.error_reason,
            version=self.version,
        )

    @staticmethod
    def column_values(record: AgreementRecord) -> dict[str, Any]:
        """Column values for ``record``, excluding ``id`` and ``version``.

        Used for both INSERT and the compare-and-swap UPDATE.
        """
        tenant = record.tenant_signature
        landlord = record.landlord_signature
        document = record.document
        return {
            "booking_id": record.booking_id,
            "status": record.status.value,
            "first_signer": record.first_signer.value,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "tenant_artifact_id": tenant.artifact_id if tenant else None,
            "tenant_signed_at": tenant.signed_at if tenant else None,
            "tenant_signature_hash": tenant.content_hash if tenant else None,
            "tenant_actor_id": tenant.actor_id if tenant else None,
            "landlord_artifact_id": landlord.artifact_id if landlord else None,
            "landlord_signed_at": landlord.signed_at if landlord else None,
            "landlord_signature_hash": landlord.content_hash if landlord else None,
            "landlord_actor_id": landlord.actor_id if landlord else None,
            "document_ref": document.ref if document else None,
            "document_filename": document.filename if document else None,
            "document_hash": document.content_hash if document else None,
            "document_media_type": document.media_type if document else None,
            "document_generated_at": document.generated_at if document else None,
            "document_attempts": record.document_attempts,
            "last_document_error": record.last_document_error,
            "error_reason": record.error_reason,
        }

    @classmethod
    def from_record(cls, record: AgreementRecord, version: int) -> AgreementModel:
        """Create ORM model from domain record, stamped with ``version``."""
        return cls(id=record.agreement_id, version=version, **cls.column_values(record))


def _signature_ref(
    role: Role,
    artifact_id: UUID | None,
    signed_at: datetime | None,
    content_hash: str | None,
    actor_id: str | None,
) -> SignatureRef | None:
    if artifact_id is None:
        return None
    return SignatureRef(
        artifact_id=artifact_id,
        role=role,
        signed_at=signed_at,
        content_hash=content_hash or "",
        actor_id=actor_id,
    )
