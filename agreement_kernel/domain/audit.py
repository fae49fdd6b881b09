"""
Agreement audit types (``agreement_kernel.domain.audit``).

Agreements are never deleted; their history is kept as an append-only list
of audit events, one per significant action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class AuditAction(str, Enum):
    """Types of auditable agreement actions.

    Contract: adding a member requires the workflow engine to emit it.
    """

    AGREEMENT_CREATED = "AGREEMENT_CREATED"
    SIGNATURE_RECORDED = "SIGNATURE_RECORDED"
    AGREEMENT_COMPLETED = "AGREEMENT_COMPLETED"
    DOCUMENT_GENERATED = "DOCUMENT_GENERATED"
    DOCUMENT_GENERATION_FAILED = "DOCUMENT_GENERATION_FAILED"
    DOCUMENT_INVALIDATED = "DOCUMENT_INVALIDATED"
    AGREEMENT_ERRORED = "AGREEMENT_ERRORED"


@dataclass(frozen=True)
class AuditEventRecord:
    event_id: UUID
    agreement_id: UUID
    booking_id: str
    action: AuditAction
    occurred_at: datetime
    payload_hash: str
    actor_id: str | None = None
    actor_role: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
