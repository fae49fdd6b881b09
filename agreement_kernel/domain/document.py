"""
Document generation inputs (``agreement_kernel.domain.document``).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from agreement_kernel.domain.booking import BookingSnapshot
from agreement_kernel.domain.signature import SignatureArtifact

DEFAULT_FILENAME_TEMPLATE = "rental-agreement-{booking_id}.pdf"


@dataclass(frozen=True)
class DocumentRequest:
    """Everything the generator needs; both signatures are always present."""

    agreement_id: UUID
    booking: BookingSnapshot
    tenant_signature: SignatureArtifact
    landlord_signature: SignatureArtifact
    filename: str

    @classmethod
    def build(
        cls,
        agreement_id: UUID,
        booking: BookingSnapshot,
        tenant_signature: SignatureArtifact,
        landlord_signature: SignatureArtifact,
        filename_template: str = DEFAULT_FILENAME_TEMPLATE,
    ) -> DocumentRequest:
        filename = filename_template.format(
            booking_id=booking.booking_id,
            agreement_id=agreement_id,
            property_id=booking.property.property_id,
        )
        return cls(
            agreement_id=agreement_id,
            booking=booking,
            tenant_signature=tenant_signature,
            landlord_signature=landlord_signature,
            filename=filename,
        )
