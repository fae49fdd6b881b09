"""
Module: agreement_kernel.models.artifact
Responsibility: ORM persistence for signature images.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Artifacts are write-once: no UPDATE, no DELETE (ORM listeners).
    - UNIQUE(agreement_id, role): one signature per role per agreement.
    - ``content_hash`` is the SHA-256 of ``content`` at upload time; the
      store re-checks it on every read.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError when a second artifact is stored for the same role.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, Integer, LargeBinary, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from agreement_kernel.db.base import Base, UUIDString
from agreement_kernel.domain.agreement import Role
from agreement_kernel.domain.signature import SignatureArtifact
from agreement_kernel.exceptions import ImmutabilityViolationError


class SignatureArtifactModel(Base):
    """Persistent signature image.  Append-only.

    ``agreement_id`` is deliberately not a foreign key: the artifact is
    written in the same transaction that first creates the agreement row.
    """

    __tablename__ = "signature_artifacts"

    __table_args__ = (
        UniqueConstraint("agreement_id", "role", name="uq_signature_artifacts_role"),
        Index("idx_signature_artifacts_booking", "booking_id"),
    )

    agreement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False)

    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    media_type: Mapped[str] = mapped_column(String(50), nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<SignatureArtifact {self.role} for {self.booking_id}>"

    def to_artifact(self) -> SignatureArtifact:
        return SignatureArtifact(
            artifact_id=self.id,
            agreement_id=self.agreement_id,
            booking_id=self.booking_id,
            role=Role(self.role),
            content=self.content,
            content_hash=self.content_hash,
            width=self.width,
            height=self.height,
            uploaded_at=self.uploaded_at,
            media_type=self.media_type,
            actor_id=self.actor_id,
        )

    @classmethod
    def from_artifact(cls, artifact: SignatureArtifact) -> SignatureArtifactModel:
        return cls(
            id=artifact.artifact_id,
            agreement_id=artifact.agreement_id,
            booking_id=artifact.booking_id,
            role=artifact.role.value,
            content=artifact.content,
            content_hash=artifact.content_hash,
            media_type=artifact.media_type,
            width=artifact.width,
            height=artifact.height,
            uploaded_at=artifact.uploaded_at,
            actor_id=artifact.actor_id,
        )


# =============================================================================
# ORM-Level Immutability Protection
# =============================================================================


@event.listens_for(SignatureArtifactModel, "before_update")
def prevent_artifact_update(mapper, connection, target):
    """Prevent any updates to signature artifacts.

    Raises: ImmutabilityViolationError always.
    """
    raise ImmutabilityViolationError(
        entity_type="SignatureArtifact",
        entity_id=str(target.id),
        reason="signature artifacts are write-once - cannot modify",
    )


@event.listens_for(SignatureArtifactModel, "before_delete")
def prevent_artifact_delete(mapper, connection, target):
    """Prevent deletion of signature artifacts.

    Raises: ImmutabilityViolationError always.
    """
    raise ImmutabilityViolationError(
        entity_type="SignatureArtifact",
        entity_id=str(target.id),
        reason="signature artifacts are write-once - cannot delete",
    )
