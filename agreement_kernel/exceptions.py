"""
Typed Exception Hierarchy for the Agreement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the signing workflow must decide between three reactions to a
failure: retry the same call, re-fetch the status and redraw the UI, or show
a message to the user.  Parsing message strings for that decision is fragile,
so every error is:
  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (booking_id, status, role, ...)

Example:
    try:
        engine.sign(booking_id, "landlord", png)
    except WrongTurnError as e:
        refresh_status(e.booking_id)          # permanent for this state
    except ConflictError:
        retry_sign()                          # transient

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AgreementKernelError (base)
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- WorkflowError
    |   +-- WrongTurnError
    |   +-- InvalidRoleError
    |   +-- AgreementInvariantError
    |   +-- BookingNotFoundError
    |   +-- AgreementNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- SignatureError
    |   +-- EmptyInputError
    |   +-- InvalidSignatureImageError
    |   +-- ArtifactNotFoundError
    |   +-- ArtifactIntegrityError
    |
    +-- DocumentError
    |   +-- DocumentNotReadyError
    |   +-- DocumentGenerationFailedError
    |       +-- DocumentGenerationTimeoutError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AccessError
        +-- ForbiddenError
        +-- UnauthorizedSignerError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | Retry?  | When Raised
----------------|-----------------------------|---------|---------------------------------
Storage         | STORAGE_UNAVAILABLE         | yes     | Database unreachable / I/O error
----------------|-----------------------------|---------|---------------------------------
Workflow        | WRONG_TURN                  | no      | Role may not sign in this state
                | INVALID_ROLE                | no      | Role is not tenant/landlord
                | AGREEMENT_INVARIANT         | no      | Record would break invariants
                | BOOKING_NOT_FOUND           | no      | Booking provider has no booking
----------------|-----------------------------|---------|---------------------------------
Concurrency     | CONFLICT                    | yes     | Lost a compare-and-swap race
----------------|-----------------------------|---------|---------------------------------
Signature       | EMPTY_INPUT                 | no      | Nothing was drawn
                | INVALID_SIGNATURE_IMAGE     | no      | Upload is not a usable image
                | ARTIFACT_NOT_FOUND          | no      | Artifact id unknown
                | ARTIFACT_INTEGRITY          | no      | Stored bytes fail hash check
----------------|-----------------------------|---------|---------------------------------
Document        | DOCUMENT_NOT_READY          | later   | Agreement not COMPLETED
                | DOCUMENT_GENERATION_FAILED  | later   | Renderer or storage failed
                | DOCUMENT_GENERATION_TIMEOUT | later   | Renderer exceeded its timeout
----------------|-----------------------------|---------|---------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | no      | UPDATE/DELETE of write-once row
----------------|-----------------------------|---------|---------------------------------
Access          | FORBIDDEN                   | no      | Caller is not a booking party
                | UNAUTHORIZED_SIGNER         | no      | Claimed role is not the caller's

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception, not ValueError/RuntimeError: domain errors must be
   catchable as a group without mixing in programming errors.

2. ``code`` is a class attribute: static per type, usable without an
   instance (API documentation, status mapping tables).

3. ``retryable`` is a class attribute: the API boundary reports it so callers
   never need their own table of transient codes.
"""


class AgreementKernelError(Exception):
    """
    Base exception for all agreement kernel errors.

    All subclasses must define a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "AGREEMENT_KERNEL_ERROR"
    retryable: bool = False


# Storage-related exceptions


class StorageError(AgreementKernelError):
    """Base exception for storage-layer errors."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """The agreement store could not be reached or failed mid-operation."""

    code: str = "STORAGE_UNAVAILABLE"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


# Workflow-related exceptions


class WorkflowError(AgreementKernelError):
    """Base exception for state-machine errors."""

    code: str = "WORKFLOW_ERROR"


class WrongTurnError(WorkflowError):
    """
    The role is not allowed to sign in the agreement's current state.

    Raised both when the role already signed and when it is not yet the
    role's turn.  Permanent for the current state: callers should re-fetch
    the status instead of retrying.
    """

    code: str = "WRONG_TURN"

    def __init__(
        self,
        booking_id: str,
        role: str,
        status: str,
        awaiting_role: str | None,
    ):
        self.booking_id = booking_id
        self.role = role
        self.status = status
        self.awaiting_role = awaiting_role
        awaiting = awaiting_role or "nobody"
        super().__init__(
            f"Role {role} may not sign booking {booking_id} in status "
            f"{status} (awaiting {awaiting})"
        )


class InvalidRoleError(WorkflowError):
    """Actor role is not one of the signing parties."""

    code: str = "INVALID_ROLE"

    def __init__(self, role: object):
        self.role = str(role)
        super().__init__(f"Invalid signing role: {role!r}")


class AgreementInvariantError(WorkflowError):
    """An agreement record would violate its status/field invariants."""

    code: str = "AGREEMENT_INVARIANT"

    def __init__(self, booking_id: str, status: str, reason: str):
        self.booking_id = booking_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Agreement for booking {booking_id} in status {status} "
            f"is inconsistent: {reason}"
        )


class BookingNotFoundError(WorkflowError):
    """The booking provider has no booking with this id."""

    code: str = "BOOKING_NOT_FOUND"

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class AgreementNotFoundError(WorkflowError):
    """No agreement exists with this id."""

    code: str = "AGREEMENT_NOT_FOUND"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(f"Agreement not found: {agreement_id}")


# Concurrency-related exceptions


class ConcurrencyError(AgreementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConflictError(ConcurrencyError):
    """
    A concurrent writer changed the agreement first.

    The whole sign call should be retried; the retry re-reads the state and
    will usually end in success or WrongTurnError.
    """

    code: str = "CONFLICT"

    def __init__(self, booking_id: str, expected_version: int | None):
        self.booking_id = booking_id
        self.expected_version = expected_version
        if expected_version is None:
            detail = "agreement was created by another request"
        else:
            detail = f"expected version {expected_version} is no longer current"
        super().__init__(f"Conflict on booking {booking_id}: {detail}")


# Signature-related exceptions


class SignatureError(AgreementKernelError):
    """Base exception for signature capture and artifact errors."""

    code: str = "SIGNATURE_ERROR"


class EmptyInputError(SignatureError):
    """No signature was drawn (or the uploaded image is blank)."""

    code: str = "EMPTY_INPUT"

    def __init__(self, reason: str = "no strokes were drawn"):
        self.reason = reason
        super().__init__(f"Empty signature: {reason}")


class InvalidSignatureImageError(SignatureError):
    """Uploaded signature bytes are not a usable image."""

    code: str = "INVALID_SIGNATURE_IMAGE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid signature image: {reason}")


class ArtifactNotFoundError(SignatureError):
    """Signature artifact with given id was not found."""

    code: str = "ARTIFACT_NOT_FOUND"

    def __init__(self, artifact_id: str):
        self.artifact_id = artifact_id
        super().__init__(f"Signature artifact not found: {artifact_id}")


class ArtifactIntegrityError(SignatureError):
    """Stored artifact bytes no longer match their recorded hash."""

    code: str = "ARTIFACT_INTEGRITY"

    def __init__(self, artifact_id: str, expected_hash: str, actual_hash: str):
        self.artifact_id = artifact_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Signature artifact {artifact_id} failed integrity check: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Document-related exceptions


class DocumentError(AgreementKernelError):
    """Base exception for final-document errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotReadyError(DocumentError):
    """Document requested before the agreement is COMPLETED."""

    code: str = "DOCUMENT_NOT_READY"

    def __init__(self, booking_id: str, status: str):
        self.booking_id = booking_id
        self.status = status
        super().__init__(
            f"Document for booking {booking_id} is not ready (status {status})"
        )


class DocumentGenerationFailedError(DocumentError):
    """
    The document generator failed.

    Non-fatal to signing: signatures stay committed and generation can be
    retried through get_document.
    """

    code: str = "DOCUMENT_GENERATION_FAILED"
    retryable: bool = True

    def __init__(self, booking_id: str, reason: str):
        self.booking_id = booking_id
        self.reason = reason
        super().__init__(
            f"Document generation failed for booking {booking_id}: {reason}"
        )


class DocumentGenerationTimeoutError(DocumentGenerationFailedError):
    """The document generator did not finish within its timeout."""

    code: str = "DOCUMENT_GENERATION_TIMEOUT"

    def __init__(self, booking_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            booking_id, f"timed out after {timeout_seconds:g}s"
        )


# Immutability-related exceptions


class ImmutabilityError(AgreementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete a write-once record.

    Signature artifacts and audit events are immutable from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Access-related exceptions (raised by the caller-facing API layer)


class AccessError(AgreementKernelError):
    """Base exception for caller identity checks."""

    code: str = "ACCESS_ERROR"


class ForbiddenError(AccessError):
    """The caller is neither the tenant nor the landlord of the booking."""

    code: str = "FORBIDDEN"

    def __init__(self, booking_id: str, user_id: str | None):
        self.booking_id = booking_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id or '<anonymous>'} is not a party to booking {booking_id}"
        )


class UnauthorizedSignerError(AccessError):
    """The caller claimed a role that belongs to the other party."""

    code: str = "UNAUTHORIZED_SIGNER"

    def __init__(self, booking_id: str, user_id: str, claimed_role: str):
        self.booking_id = booking_id
        self.user_id = user_id
        self.claimed_role = claimed_role
        super().__init__(
            f"User {user_id} may not sign booking {booking_id} as {claimed_role}"
        )
