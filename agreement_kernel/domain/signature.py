"""
Signature artifact types (``agreement_kernel.domain.signature``).

A signature artifact is the PNG produced by signature capture for one role
on one agreement.  It is write-once: created when the role signs, never
updated, only referenced.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from uuid import UUID, uuid4

from agreement_kernel.domain.agreement import Role, SignatureRef
from agreement_kernel.utils.hashing import hash_bytes

# One stroke is the list of points the pen passed through, in canvas pixels.
Point = tuple[float, float]
Stroke = Sequence[Point]

PNG_MEDIA_TYPE = "image/png"


def content_hash(content: bytes) -> str:
    """SHA-256 hex digest of artifact bytes."""
    return hash_bytes(content)


@dataclass(frozen=True)
class CaptureSettings:
    """Normalization parameters for signature capture.

    Every artifact is drawn on the same fixed canvas, trimmed to its
    content and encoded as PNG.
    """

    canvas_width: int = 600
    canvas_height: int = 200
    stroke_width: int = 3
    padding: int = 4
    ink_threshold: int = 16
    max_upload_bytes: int = 2_000_000


@dataclass(frozen=True)
class SignatureArtifact:
    artifact_id: UUID
    agreement_id: UUID
    booking_id: str
    role: Role
    content: bytes
    content_hash: str
    width: int
    height: int
    uploaded_at: datetime
    media_type: str = PNG_MEDIA_TYPE
    actor_id: str | None = None

    @classmethod
    def create(
        cls,
        *,
        agreement_id: UUID,
        booking_id: str,
        role: Role,
        content: bytes,
        width: int,
        height: int,
        uploaded_at: datetime,
        actor_id: str | None = None,
    ) -> SignatureArtifact:
        return cls(
            artifact_id=uuid4(),
            agreement_id=agreement_id,
            booking_id=booking_id,
            role=role,
            content=content,
            content_hash=content_hash(content),
            width=width,
            height=height,
            uploaded_at=uploaded_at,
            actor_id=actor_id,
        )

    def to_ref(self) -> SignatureRef:
        return SignatureRef(
            artifact_id=self.artifact_id,
            role=self.role,
            signed_at=self.uploaded_at,
            content_hash=self.content_hash,
            actor_id=self.actor_id,
        )

    def verify(self) -> bool:
        """True if the content still matches the recorded hash."""
        return content_hash(self.content) == self.content_hash
