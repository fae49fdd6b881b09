"""
Agreement domain types (``agreement_kernel.domain.agreement``).

Responsibility
--------------
Pure value objects for the rental-agreement signing workflow.  Defines the
agreement lifecycle state machine, the signing-order policy, the persisted
agreement record and the read model returned to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``AGREEMENT_TRANSITIONS`` defines the only valid status transitions.
  ERROR has no outgoing edges.
* Turn rule: a role may sign only in the pending state named after it, or
  in NOT_INITIALIZED when it is the configured first signer (any role when
  ``allow_out_of_order`` is set).  A role never signs twice.
* ``AgreementRecord.check_invariants``: the document is present only when
  COMPLETED; outside ERROR, the tenant signature is present exactly in
  PENDING_LANDLORD/COMPLETED and the landlord signature exactly in
  PENDING_TENANT/COMPLETED; a persisted record is never NOT_INITIALIZED.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from agreement_kernel.exceptions import (
    AgreementInvariantError,
    InvalidRoleError,
    WrongTurnError,
)


# =========================================================================
# Roles and statuses
# =========================================================================


class Role(str, Enum):
    """The two parties who must sign."""

    TENANT = "tenant"
    LANDLORD = "landlord"

    @property
    def other(self) -> Role:
        return Role.LANDLORD if self is Role.TENANT else Role.TENANT

    @classmethod
    def parse(cls, value: object) -> Role:
        """Parse a caller-supplied role; raises InvalidRoleError."""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidRoleError(value) from None


class AgreementStatus(str, Enum):
    """Persisted agreement lifecycle states."""

    NOT_INITIALIZED = "NOT_INITIALIZED"
    PENDING_TENANT = "PENDING_TENANT"
    PENDING_LANDLORD = "PENDING_LANDLORD"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ViewStatus(str, Enum):
    """Statuses reported to callers.

    Adds COMPLETED_DOCUMENT_PENDING: both parties signed but the final
    document is not available yet.
    """

    NOT_INITIALIZED = "NOT_INITIALIZED"
    PENDING_TENANT = "PENDING_TENANT"
    PENDING_LANDLORD = "PENDING_LANDLORD"
    COMPLETED = "COMPLETED"
    COMPLETED_DOCUMENT_PENDING = "COMPLETED_DOCUMENT_PENDING"
    ERROR = "ERROR"


AGREEMENT_TRANSITIONS: dict[AgreementStatus, frozenset[AgreementStatus]] = {
    AgreementStatus.NOT_INITIALIZED: frozenset({
        AgreementStatus.PENDING_TENANT,
        AgreementStatus.PENDING_LANDLORD,
        AgreementStatus.ERROR,
    }),
    AgreementStatus.PENDING_TENANT: frozenset({
        AgreementStatus.COMPLETED,
        AgreementStatus.ERROR,
    }),
    AgreementStatus.PENDING_LANDLORD: frozenset({
        AgreementStatus.COMPLETED,
        AgreementStatus.ERROR,
    }),
    AgreementStatus.COMPLETED: frozenset({
        AgreementStatus.ERROR,
    }),
    AgreementStatus.ERROR: frozenset(),
}

TERMINAL_AGREEMENT_STATUSES: frozenset[AgreementStatus] = frozenset({
    AgreementStatus.ERROR,
})


def pending_status_for(role: Role) -> AgreementStatus:
    """The pending state in which ``role`` is the one expected to sign."""
    if role is Role.TENANT:
        return AgreementStatus.PENDING_TENANT
    return AgreementStatus.PENDING_LANDLORD


def can_transition(current: AgreementStatus, target: AgreementStatus) -> bool:
    return target in AGREEMENT_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Signing order
# =========================================================================


@dataclass(frozen=True)
class SigningPolicy:
    """Who signs first, and whether the other party may jump the queue.

    The default is tenant-first with strict ordering.  The first signer is
    captured on the agreement when it is created, so changing the policy
    later never reorders agreements that are already in flight.
    """

    first_signer: Role = Role.TENANT
    allow_out_of_order: bool = False

    def roles_allowed(self, status: AgreementStatus) -> frozenset[Role]:
        """Roles that may sign in ``status``."""
        if status is AgreementStatus.NOT_INITIALIZED:
            if self.allow_out_of_order:
                return frozenset(Role)
            return frozenset({self.first_signer})
        if status is AgreementStatus.PENDING_TENANT:
            return frozenset({Role.TENANT})
        if status is AgreementStatus.PENDING_LANDLORD:
            return frozenset({Role.LANDLORD})
        return frozenset()

    def awaiting(self, status: AgreementStatus) -> Role | None:
        """The role whose turn it is, if any."""
        if status is AgreementStatus.NOT_INITIALIZED:
            return self.first_signer
        if status is AgreementStatus.PENDING_TENANT:
            return Role.TENANT
        if status is AgreementStatus.PENDING_LANDLORD:
            return Role.LANDLORD
        return None

    def next_status(
        self,
        booking_id: str,
        status: AgreementStatus,
        role: Role,
    ) -> AgreementStatus:
        """Status after ``role`` signs in ``status``.

        Raises:
            WrongTurnError: If it is not ``role``'s turn.
        """
        if role not in self.roles_allowed(status):
            awaiting = self.awaiting(status)
            raise WrongTurnError(
                booking_id,
                role.value,
                status.value,
                awaiting.value if awaiting else None,
            )
        if status is AgreementStatus.NOT_INITIALIZED:
            target = pending_status_for(role.other)
        else:
            target = AgreementStatus.COMPLETED
        assert can_transition(status, target)
        return target


# =========================================================================
# References
# =========================================================================


@dataclass(frozen=True)
class SignatureRef:
    """Pointer from an agreement to one stored signature artifact."""

    artifact_id: UUID
    role: Role
    signed_at: datetime
    content_hash: str
    actor_id: str | None = None


@dataclass(frozen=True)
class DocumentRef:
    """Stable reference to the generated agreement document.

    ``ref`` is a URL or a content-addressed storage key; it does not change
    until the document is explicitly invalidated.
    """

    ref: str
    filename: str
    content_hash: str
    generated_at: datetime
    media_type: str = "application/pdf"


# =========================================================================
# Agreement record
# =========================================================================


@dataclass(frozen=True)
class AgreementRecord:
    """One agreement per booking, as persisted by the agreement store.

    ``version`` is 0 for a record that has not been written yet and grows
    by one with every successful write (compare-and-swap token).
    """

    agreement_id: UUID
    booking_id: str
    status: AgreementStatus
    first_signer: Role
    created_at: datetime
    updated_at: datetime
    tenant_signature: SignatureRef | None = None
    landlord_signature: SignatureRef | None = None
    document: DocumentRef | None = None
    document_attempts: int = 0
    last_document_error: str | None = None
    error_reason: str | None = None
    version: int = 0

    @classmethod
    def draft(
        cls,
        booking_id: str,
        policy: SigningPolicy,
        now: datetime,
    ) -> AgreementRecord:
        """Unsaved agreement for a booking that has no record yet."""
        return cls(
            agreement_id=uuid4(),
            booking_id=booking_id,
            status=AgreementStatus.NOT_INITIALIZED,
            first_signer=policy.first_signer,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_persisted(self) -> bool:
        return self.version > 0

    @property
    def document_pending(self) -> bool:
        return self.status is AgreementStatus.COMPLETED and self.document is None

    def signature_for(self, role: Role) -> SignatureRef | None:
        if role is Role.TENANT:
            return self.tenant_signature
        return self.landlord_signature

    # ------------------------------------------------------------------
    # Transitions (each returns a new record; nothing mutates in place)
    # ------------------------------------------------------------------

    def with_signature(
        self,
        signature: SignatureRef,
        status: AgreementStatus,
        now: datetime,
    ) -> AgreementRecord:
        field_name = (
            "tenant_signature"
            if signature.role is Role.TENANT
            else "landlord_signature"
        )
        return replace(
            self, **{field_name: signature}, status=status, updated_at=now,
        )

    def with_document(self, document: DocumentRef, now: datetime) -> AgreementRecord:
        return replace(
            self,
            document=document,
            document_attempts=self.document_attempts + 1,
            last_document_error=None,
            updated_at=now,
        )

    def with_document_failure(self, reason: str, now: datetime) -> AgreementRecord:
        return replace(
            self,
            document_attempts=self.document_attempts + 1,
            last_document_error=reason,
            updated_at=now,
        )

    def without_document(self, now: datetime) -> AgreementRecord:
        return replace(self, document=None, updated_at=now)

    def with_error(self, reason: str, now: datetime) -> AgreementRecord:
        return replace(
            self,
            status=AgreementStatus.ERROR,
            document=None,
            error_reason=reason,
            updated_at=now,
        )

    def check_invariants(self) -> None:
        """Raise AgreementInvariantError if the record is inconsistent."""

        def fail(reason: str) -> None:
            raise AgreementInvariantError(self.booking_id, self.status.value, reason)

        if self.status is AgreementStatus.NOT_INITIALIZED:
            fail("an agreement is never stored before its first signature")
        if self.document is not None and self.status is not AgreementStatus.COMPLETED:
            fail("document is set but agreement is not COMPLETED")
        if (self.error_reason is not None) != (self.status is AgreementStatus.ERROR):
            fail("error_reason must be set exactly when status is ERROR")
        if self.status is AgreementStatus.ERROR:
            return

        tenant_expected = self.status in (
            AgreementStatus.PENDING_LANDLORD,
            AgreementStatus.COMPLETED,
        )
        landlord_expected = self.status in (
            AgreementStatus.PENDING_TENANT,
            AgreementStatus.COMPLETED,
        )
        if (self.tenant_signature is not None) != tenant_expected:
            fail("tenant signature does not match status")
        if (self.landlord_signature is not None) != landlord_expected:
            fail("landlord signature does not match status")
        for role in Role:
            sig = self.signature_for(role)
            if sig is not None and sig.role is not role:
                fail(f"{role.value} slot holds a {sig.role.value} signature")


# =========================================================================
# Read model
# =========================================================================


@dataclass(frozen=True)
class AgreementView:
    """What callers see: status, who signed, whose turn, document state."""

    booking_id: str
    status: ViewStatus
    awaiting_role: Role | None
    agreement_id: UUID | None = None
    tenant_signed_at: datetime | None = None
    landlord_signed_at: datetime | None = None
    document: DocumentRef | None = None
    document_attempts: int = 0
    last_document_error: str | None = None
    error_reason: str | None = None
    version: int = 0

    @property
    def tenant_signed(self) -> bool:
        return self.tenant_signed_at is not None

    @property
    def landlord_signed(self) -> bool:
        return self.landlord_signed_at is not None

    @property
    def document_pending(self) -> bool:
        return self.status is ViewStatus.COMPLETED_DOCUMENT_PENDING

    def has_signed(self, role: Role) -> bool:
        return self.tenant_signed if role is Role.TENANT else self.landlord_signed

    @classmethod
    def not_initialized(cls, booking_id: str, policy: SigningPolicy) -> AgreementView:
        """Synthetic view for a booking that has no agreement record."""
        return cls(
            booking_id=booking_id,
            status=ViewStatus.NOT_INITIALIZED,
            awaiting_role=policy.awaiting(AgreementStatus.NOT_INITIALIZED),
        )

    @classmethod
    def from_record(cls, record: AgreementRecord) -> AgreementView:
        if record.document_pending:
            status = ViewStatus.COMPLETED_DOCUMENT_PENDING
        else:
            status = ViewStatus(record.status.value)
        policy = SigningPolicy(first_signer=record.first_signer)
        return cls(
            booking_id=record.booking_id,
            status=status,
            awaiting_role=policy.awaiting(record.status),
            agreement_id=record.agreement_id,
            tenant_signed_at=(
                record.tenant_signature.signed_at if record.tenant_signature else None
            ),
            landlord_signed_at=(
                record.landlord_signature.signed_at if record.landlord_signature else None
            ),
            document=record.document,
            document_attempts=record.document_attempts,
            last_document_error=record.last_document_error,
            error_reason=record.error_reason,
            version=record.version,
        )
