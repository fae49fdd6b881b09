"""
agreement_kernel.services.document_generator -- Final agreement document.

Responsibility:
    Renders the signed rental agreement (tenancy terms plus both signature
    images) to PDF and stores it, returning a stable reference.

Architecture position:
    Kernel > Services.  Pluggable: the workflow engine depends only on the
    ``DocumentGenerator`` protocol.  Uses reportlab for rendering.

Invariants enforced:
    - Rendering is deterministic (reportlab invariant mode), so the same
      request always yields the same bytes and the same reference.
    - Storage is content-addressed and write-once: ``<sha256>/<filename>``.

Failure modes:
    - DocumentGenerationFailedError if rendering or storage fails.
"""

from __future__ import annotations

import io
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from agreement_kernel.domain.agreement import Role
from agreement_kernel.domain.document import DocumentRequest
from agreement_kernel.domain.signature import SignatureArtifact
from agreement_kernel.exceptions import DocumentGenerationFailedError
from agreement_kernel.logging_config import get_logger
from agreement_kernel.utils.hashing import hash_bytes

logger = get_logger("services.document_generator")

PDF_MEDIA_TYPE = "application/pdf"


@dataclass(frozen=True)
class GeneratedDocument:
    ref: str
    filename: str
    content_hash: str
    size_bytes: int
    media_type: str = PDF_MEDIA_TYPE


class DocumentGenerator(Protocol):
    """Produces the final document for a completed agreement."""

    def generate(self, request: DocumentRequest) -> GeneratedDocument:
        """Render and store; raise DocumentGenerationFailedError on failure."""
        ...


class DocumentStorage(Protocol):
    def put(self, filename: str, content: bytes) -> str:
        """Store ``content`` and return its reference."""
        ...

    def get(self, ref: str) -> bytes:
        ...


class FilesystemDocumentStorage:
    """Content-addressed document storage on a local directory.

    ``put`` is idempotent: storing the same bytes under the same filename
    returns the same reference and leaves the existing file untouched.
    When ``public_base_url`` is set, references are URLs under it;
    otherwise they are storage keys relative to ``root``.
    """

    def __init__(self, root: str | os.PathLike, public_base_url: str | None = None):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _key(self, filename: str, content: bytes) -> str:
        safe_name = Path(filename).name or "document.pdf"
        return f"{hash_bytes(content)}/{safe_name}"

    def put(self, filename: str, content: bytes) -> str:
        key = self._key(filename, content)
        path = self.root / key
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".part")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(content)
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            logger.info("document_stored", extra={"key": key, "size_bytes": len(content)})
        return f"{self.public_base_url}/{key}" if self.public_base_url else key

    def get(self, ref: str) -> bytes:
        key = ref
        if self.public_base_url and ref.startswith(self.public_base_url + "/"):
            key = ref[len(self.public_base_url) + 1:]
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise FileNotFoundError(ref)
        return path.read_bytes()


class PdfAgreementGenerator:
    """Renders a one-page A4 agreement with reportlab."""

    def __init__(self, storage: DocumentStorage, title: str = "Rental Agreement"):
        self.storage = storage
        self.title = title

    def generate(self, request: DocumentRequest) -> GeneratedDocument:
        booking_id = request.booking.booking_id
        try:
            content = self.render(request)
            ref = self.storage.put(request.filename, content)
        except (OSError, ValueError) as exc:
            logger.error(
                "document_render_failed",
                extra={"booking_id": booking_id, "error": str(exc)},
            )
            raise DocumentGenerationFailedError(booking_id, str(exc)) from exc

        logger.info(
            "document_rendered",
            extra={"booking_id": booking_id, "ref": ref, "size_bytes": len(content)},
        )
        return GeneratedDocument(
            ref=ref,
            filename=request.filename,
            content_hash=hash_bytes(content),
            size_bytes=len(content),
        )

    def render(self, request: DocumentRequest) -> bytes:
        booking = request.booking
        buffer = io.BytesIO()
        width, height = A4
        pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        pdf.setTitle(f"{self.title} {booking.booking_id}")

        y = height - 2.5 * cm
        pdf.setFont("Helvetica-Bold", 18)
        pdf.drawString(2 * cm, y, self.title)

        y -= 1.2 * cm
        pdf.setFont("Helvetica", 10)
        lines = [
            f"Agreement: {request.agreement_id}",
            f"Booking: {booking.booking_id}",
            f"Property: {booking.property.title}",
            f"Address: {booking.property.address or '-'}",
            f"Tenancy: {booking.start_date.isoformat()} to {booking.end_date.isoformat()}",
            f"Rent: {booking.rent_amount} {booking.currency}",
            f"Tenant: {booking.tenant_id}",
            f"Landlord: {booking.landlord_id}",
        ]
        for line in lines:
            pdf.drawString(2 * cm, y, line)
            y -= 0.6 * cm

        y -= 1.0 * cm
        column_width = (width - 5 * cm) / 2
        for index, artifact in enumerate((request.tenant_signature, request.landlord_signature)):
            x = 2 * cm + index * (column_width + 1 * cm)
            self._draw_signature(pdf, artifact, x, y, column_width)

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _draw_signature(
        self,
        pdf: canvas.Canvas,
        artifact: SignatureArtifact,
        x: float,
        top: float,
        max_width: float,
    ) -> None:
        label = "Tenant" if artifact.role is Role.TENANT else "Landlord"
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(x, top, f"{label} signature")

        box_height = 3 * cm
        scale = min(max_width / artifact.width, box_height / artifact.height, 1.0)
        draw_w = artifact.width * scale
        draw_h = artifact.height * scale
        image_y = top - 0.4 * cm - draw_h
        pdf.drawImage(
            ImageReader(io.BytesIO(artifact.content)),
            x,
            image_y,
            width=draw_w,
            height=draw_h,
            mask="auto",
        )
        pdf.line(x, image_y - 0.1 * cm, x + max_width, image_y - 0.1 * cm)
        pdf.setFont("Helvetica", 9)
        pdf.drawString(
            x,
            image_y - 0.6 * cm,
            f"Signed {artifact.uploaded_at.isoformat()}",
        )
