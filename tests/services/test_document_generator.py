"""
Tests for PDF rendering and content-addressed document storage.
"""

from uuid import uuid4

import pytest

from agreement_kernel.domain.agreement import Role
from agreement_kernel.domain.document import DocumentRequest
from agreement_kernel.domain.signature import SignatureArtifact
from agreement_kernel.exceptions import DocumentGenerationFailedError
from agreement_kernel.services.document_generator import (
    FilesystemDocumentStorage,
    PdfAgreementGenerator,
)
from agreement_kernel.utils.hashing import hash_bytes


@pytest.fixture
def request_for(booking, capture, deterministic_clock):
    """Build a DocumentRequest for the B1 booking with drawn signatures."""

    def _build(filename_template: str = "rental-agreement-{booking_id}.pdf"):
        agreement_id = uuid4()
        artifacts = []
        for role, offset in ((Role.TENANT, 0), (Role.LANDLORD, 30)):
            result = capture.render_strokes([[(40 + offset, 120), (200, 60 + offset)]])
            artifacts.append(
                SignatureArtifact.create(
                    agreement_id=agreement_id,
                    booking_id=booking.booking_id,
                    role=role,
                    content=result.content,
                    width=result.width,
                    height=result.height,
                    uploaded_at=deterministic_clock.now(),
                )
            )
        return DocumentRequest.build(
            agreement_id, booking, artifacts[0], artifacts[1], filename_template,
        )

    return _build


class TestFilesystemDocumentStorage:
    def test_put_returns_content_addressed_key(self, tmp_path):
        storage = FilesystemDocumentStorage(tmp_path)
        ref = storage.put("agreement.pdf", b"%PDF-bytes")

        assert ref == f"{hash_bytes(b'%PDF-bytes')}/agreement.pdf"
        assert (tmp_path / ref).read_bytes() == b"%PDF-bytes"
        assert storage.get(ref) == b"%PDF-bytes"

    def test_put_is_idempotent(self, tmp_path):
        storage = FilesystemDocumentStorage(tmp_path)
        assert storage.put("a.pdf", b"same") == storage.put("a.pdf", b"same")
        assert len(list(tmp_path.rglob("*.pdf"))) == 1
        assert not list(tmp_path.rglob("*.part"))

    def test_public_base_url(self, tmp_path):
        storage = FilesystemDocumentStorage(tmp_path, "https://files.example.test/agreements/")
        ref = storage.put("a.pdf", b"content")

        assert ref.startswith("https://files.example.test/agreements/")
        assert ref.endswith("/a.pdf")
        assert storage.get(ref) == b"content"

    def test_filename_directories_are_stripped(self, tmp_path):
        storage = FilesystemDocumentStorage(tmp_path)
        ref = storage.put("../../etc/passwd.pdf", b"x")
        assert ref.endswith("/passwd.pdf")
        assert (tmp_path / ref).exists()

    def test_get_refuses_paths_outside_root(self, tmp_path):
        (tmp_path / "secret.txt").write_text("nope")
        storage = FilesystemDocumentStorage(tmp_path / "docs")
        with pytest.raises(FileNotFoundError):
            storage.get("../secret.txt")


class TestPdfAgreementGenerator:
    def test_generates_pdf(self, document_generator, document_storage, request_for):
        request = request_for()
        generated = document_generator.generate(request)

        content = document_storage.get(generated.ref)
        assert content.startswith(b"%PDF")
        assert generated.filename == "rental-agreement-B1.pdf"
        assert generated.media_type == "application/pdf"
        assert generated.content_hash == hash_bytes(content)
        assert generated.size_bytes == len(content)

    def test_rendering_is_deterministic(self, document_generator, request_for):
        request = request_for()
        first = document_generator.generate(request)
        second = document_generator.generate(request)
        assert first.ref == second.ref
        assert first.content_hash == second.content_hash

    def test_filename_template(self, document_generator, request_for):
        request = request_for("{property_id}-{booking_id}.pdf")
        assert request.filename == "P-100-B1.pdf"
        assert document_generator.generate(request).ref.endswith("/P-100-B1.pdf")

    def test_storage_failure_is_generation_failure(self, request_for):
        class BrokenStorage:
            def put(self, filename, content):
                raise OSError("disk full")

            def get(self, ref):
                raise FileNotFoundError(ref)

        generator = PdfAgreementGenerator(BrokenStorage())
        with pytest.raises(DocumentGenerationFailedError, match="disk full") as exc_info:
            generator.generate(request_for())
        assert exc_info.value.booking_id == "B1"
        assert exc_info.value.retryable
