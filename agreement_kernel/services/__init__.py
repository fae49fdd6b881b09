"""Services for the agreement kernel."""

from agreement_kernel.services.agreement_store import AgreementStore
from agreement_kernel.services.document_generator import (
    DocumentGenerator,
    DocumentStorage,
    FilesystemDocumentStorage,
    GeneratedDocument,
    PdfAgreementGenerator,
)
from agreement_kernel.services.signature_capture import (
    NormalizedSignature,
    SignatureCapture,
)
from agreement_kernel.services.workflow_engine import AgreementWorkflowEngine

__all__ = [
    "AgreementStore",
    "AgreementWorkflowEngine",
    "DocumentGenerator",
    "DocumentStorage",
    "FilesystemDocumentStorage",
    "GeneratedDocument",
    "NormalizedSignature",
    "PdfAgreementGenerator",
    "SignatureCapture",
]
