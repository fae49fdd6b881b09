"""ORM models for the agreement kernel."""

from agreement_kernel.models.agreement import AgreementModel
from agreement_kernel.models.artifact import SignatureArtifactModel
from agreement_kernel.models.audit_event import AgreementAuditEventModel

__all__ = [
    "AgreementAuditEventModel",
    "AgreementModel",
    "SignatureArtifactModel",
]
