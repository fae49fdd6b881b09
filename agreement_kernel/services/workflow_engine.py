"""
agreement_kernel.services.workflow_engine -- Rental agreement signing workflow.

Responsibility:
    Drives an agreement from NOT_INITIALIZED through the two signatures to
    COMPLETED and attaches the final document.  Owns transaction
    boundaries, per-booking serialization and document generation with a
    timeout.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, services/.
    Called by the caller-facing API layer (agreement_services).

Invariants enforced:
    - Turn rule via ``SigningPolicy.next_status``; a role never signs
      twice and nobody signs once the agreement is COMPLETED or ERROR.
    - A sign call is one transaction: artifact, agreement row and audit
      events are committed together or not at all.
    - Document generation never rolls back signatures.  Failure leaves the
      agreement COMPLETED with the document pending; ``get_document``
      retries.
    - Once stored, the document reference is returned unchanged until
      ``invalidate_document`` clears it.
    - A missing or corrupted signature artifact is unrecoverable and moves
      the agreement to ERROR.

Failure modes:
    - InvalidRoleError, EmptyInputError, InvalidSignatureImageError,
      BookingNotFoundError before anything is written.
    - WrongTurnError if it is not the role's turn.
    - ConflictError if another writer changed the agreement concurrently.
    - StorageUnavailableError on database outage.
    - DocumentNotReadyError / DocumentGenerationFailedError from
      ``get_document``.

Audit relevance:
    Every state change appends an AuditEvent in the same transaction:
    AGREEMENT_CREATED, SIGNATURE_RECORDED, AGREEMENT_COMPLETED,
    DOCUMENT_GENERATED, DOCUMENT_GENERATION_FAILED, DOCUMENT_INVALIDATED,
    AGREEMENT_ERRORED.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import replace
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from agreement_kernel.db.engine import session_scope
from agreement_kernel.domain.agreement import (
    AgreementRecord,
    AgreementStatus,
    AgreementView,
    DocumentRef,
    Role,
    SigningPolicy,
)
from agreement_kernel.domain.audit import AuditAction, AuditEventRecord
from agreement_kernel.domain.booking import BookingProvider, BookingSnapshot
from agreement_kernel.domain.clock import Clock, SystemClock
from agreement_kernel.domain.document import DEFAULT_FILENAME_TEMPLATE, DocumentRequest
from agreement_kernel.domain.signature import SignatureArtifact, Stroke
from agreement_kernel.exceptions import (
    AgreementKernelError,
    AgreementNotFoundError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    ConflictError,
    DocumentGenerationFailedError,
    DocumentGenerationTimeoutError,
    DocumentNotReadyError,
    StorageUnavailableError,
)
from agreement_kernel.logging_config import LogContext, get_logger
from agreement_kernel.services.agreement_store import AgreementStore
from agreement_kernel.services.document_generator import (
    DocumentGenerator,
    GeneratedDocument,
)
from agreement_kernel.services.signature_capture import (
    NormalizedSignature,
    SignatureCapture,
)
from agreement_kernel.utils.locks import BookingLockRegistry

logger = get_logger("services.workflow_engine")

DEFAULT_DOCUMENT_TIMEOUT_SECONDS = 30.0


class AgreementWorkflowEngine:
    """
    The signing workflow over an agreement store.

    Contract:
        Methods are safe to call from many threads.  Each call opens its
        own transaction(s) from ``session_factory``.

    Non-goals:
        - Does NOT authenticate callers or map users to roles; the API
          layer does that before calling ``sign``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        booking_provider: BookingProvider,
        document_generator: DocumentGenerator,
        *,
        policy: SigningPolicy | None = None,
        clock: Clock | None = None,
        capture: SignatureCapture | None = None,
        document_timeout_seconds: float = DEFAULT_DOCUMENT_TIMEOUT_SECONDS,
        filename_template: str = DEFAULT_FILENAME_TEMPLATE,
        locks: BookingLockRegistry | None = None,
        max_document_workers: int = 2,
    ):
        self._session_factory = session_factory
        self._bookings = booking_provider
        self._generator = document_generator
        self._policy = policy or SigningPolicy()
        self._clock = clock or SystemClock()
        self._capture = capture or SignatureCapture()
        self._document_timeout = document_timeout_seconds
        self._filename_template = filename_template
        self._locks = locks or BookingLockRegistry()
        self._executor = ThreadPoolExecutor(
            max_workers=max_document_workers,
            thread_name_prefix="agreement-document",
        )

    @property
    def policy(self) -> SigningPolicy:
        return self._policy

    @property
    def capture(self) -> SignatureCapture:
        return self._capture

    def close(self) -> None:
        """Stop the document worker pool; pending generations are cancelled."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> AgreementWorkflowEngine:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_status(self, booking_id: str) -> AgreementView:
        """Current view of the booking's agreement.

        Never creates a record: a booking without one reports a synthetic
        NOT_INITIALIZED view.
        """
        with LogContext.bind(booking_id=booking_id):
            record = self._read(booking_id, "get_status")
        if record is None:
            return AgreementView.not_initialized(booking_id, self._policy)
        return AgreementView.from_record(record)

    def get_history(self, booking_id: str) -> list[AuditEventRecord]:
        with self._transaction(booking_id, "get_history") as store:
            return store.history(booking_id)

    def booking_id_for(self, agreement_id: UUID | str) -> str:
        """Booking that owns an existing agreement.

        Raises:
            AgreementNotFoundError: malformed id or no such agreement.
        """
        try:
            key = agreement_id if isinstance(agreement_id, UUID) else UUID(agreement_id)
        except ValueError as exc:
            raise AgreementNotFoundError(str(agreement_id)) from exc
        with self._transaction(str(key), "booking_id_for") as store:
            record = store.get_by_id(key)
        if record is None:
            raise AgreementNotFoundError(str(key))
        return record.booking_id

    # =========================================================================
    # Signing
    # =========================================================================

    def sign(
        self,
        booking_id: str,
        actor_role: Role | str,
        signature_image: bytes,
        actor_id: str | None = None,
    ) -> AgreementView:
        """Record ``actor_role``'s signature and advance the agreement.

        Preconditions: the caller has already established that ``actor_id``
            holds ``actor_role`` on the booking.
        Postconditions: on success the signature, the new status and the
            audit trail are committed together.  If this signature completes
            the agreement, document generation is attempted before
            returning; its failure is reported through the view
            (COMPLETED_DOCUMENT_PENDING), not raised.

        Raises:
            InvalidRoleError, EmptyInputError, InvalidSignatureImageError,
            BookingNotFoundError, WrongTurnError, ConflictError,
            StorageUnavailableError.
        """
        role = Role.parse(actor_role)
        signature = self._capture.normalize(signature_image)
        return self._sign_normalized(booking_id, role, signature, actor_id)

    def sign_strokes(
        self,
        booking_id: str,
        actor_role: Role | str,
        strokes: Sequence[Stroke],
        actor_id: str | None = None,
    ) -> AgreementView:
        """Like ``sign``, for signatures drawn as freehand strokes."""
        role = Role.parse(actor_role)
        signature = self._capture.render_strokes(strokes)
        return self._sign_normalized(booking_id, role, signature, actor_id)

    def _sign_normalized(
        self,
        booking_id: str,
        role: Role,
        signature: NormalizedSignature,
        actor_id: str | None,
    ) -> AgreementView:
        booking = self._bookings.get_booking(booking_id)

        with LogContext.bind(
            booking_id=booking_id, actor_role=role.value, actor_id=actor_id,
        ):
            with self._locks.hold(booking_id):
                record = self._record_signature(booking, role, signature, actor_id)
                if record.document_pending:
                    try:
                        record, _failure = self._generate_document(
                            record, booking, actor_id,
                        )
                    except (ConflictError, StorageUnavailableError) as exc:
                        # Signatures are committed; the document stays pending
                        # and get_document will retry.
                        logger.warning(
                            "document_outcome_not_saved",
                            extra={"error_code": exc.code, "error": str(exc)},
                        )
            return AgreementView.from_record(record)

    def _record_signature(
        self,
        booking: BookingSnapshot,
        role: Role,
        signature: NormalizedSignature,
        actor_id: str | None,
    ) -> AgreementRecord:
        booking_id = booking.booking_id
        now = self._clock.now()

        with self._transaction(booking_id, "sign") as store:
            current = store.get(booking_id)
            if current is None:
                draft = AgreementRecord.draft(booking_id, self._policy, now)
                expected_version = None
                policy = self._policy
            else:
                draft = current
                expected_version = current.version
                policy = SigningPolicy(
                    first_signer=current.first_signer,
                    allow_out_of_order=self._policy.allow_out_of_order,
                )

            target = policy.next_status(booking_id, draft.status, role)
            if current is None:
                # out-of-order signing lets either party open the agreement
                draft = replace(draft, first_signer=role)

            artifact = SignatureArtifact.create(
                agreement_id=draft.agreement_id,
                booking_id=booking_id,
                role=role,
                content=signature.content,
                width=signature.width,
                height=signature.height,
                uploaded_at=now,
                actor_id=actor_id,
            )
            store.put_artifact(artifact)
            saved = store.upsert(
                draft.with_signature(artifact.to_ref(), target, now),
                expected_version=expected_version,
            )

            audit = dict(occurred_at=now, actor_id=actor_id, actor_role=role.value)
            if current is None:
                store.append_audit(
                    saved,
                    AuditAction.AGREEMENT_CREATED,
                    payload={"first_signer": saved.first_signer.value},
                    **audit,
                )
            store.append_audit(
                saved,
                AuditAction.SIGNATURE_RECORDED,
                payload={
                    "role": role.value,
                    "artifact_id": artifact.artifact_id,
                    "content_hash": artifact.content_hash,
                    "from_status": draft.status.value,
                    "to_status": target.value,
                },
                **audit,
            )
            if target is AgreementStatus.COMPLETED:
                store.append_audit(
                    saved, AuditAction.AGREEMENT_COMPLETED, payload={}, **audit,
                )

        logger.info(
            "agreement_signed",
            extra={
                "agreement_id": str(saved.agreement_id),
                "from_status": draft.status.value,
                "to_status": saved.status.value,
                "version": saved.version,
            },
        )
        return saved

    # =========================================================================
    # Documents
    # =========================================================================

    def get_document(self, booking_id: str, actor_id: str | None = None) -> DocumentRef:
        """Reference to the final document.

        Returns the stored reference when there is one.  If the agreement
        is COMPLETED but the document is still pending, generation is
        retried once.

        Raises:
            DocumentNotReadyError: If the agreement is not COMPLETED.
            DocumentGenerationFailedError: If the retry fails (or times out).
            ArtifactNotFoundError, ArtifactIntegrityError: If a signature
                was lost; the agreement is moved to ERROR first.
        """
        with LogContext.bind(booking_id=booking_id, actor_id=actor_id):
            record = self._require_completed(booking_id)
            if record.document is not None:
                return record.document

            booking = self._bookings.get_booking(booking_id)
            with self._locks.hold(booking_id):
                record = self._require_completed(booking_id)
                if record.document is not None:
                    return record.document
                logger.info(
                    "document_generation_retry",
                    extra={"attempts": record.document_attempts},
                )
                record, failure = self._generate_document(record, booking, actor_id)

            if failure is not None:
                raise failure
            return record.document

    def invalidate_document(
        self,
        booking_id: str,
        actor_id: str | None = None,
    ) -> AgreementView:
        """Drop the stored document so the next ``get_document`` regenerates it.

        Raises:
            DocumentNotReadyError: If the agreement is not COMPLETED.
        """
        with LogContext.bind(booking_id=booking_id, actor_id=actor_id):
            with self._locks.hold(booking_id):
                now = self._clock.now()
                with self._transaction(booking_id, "invalidate_document") as store:
                    record = store.get(booking_id)
                    self._check_completed(booking_id, record)
                    if record.document is None:
                        return AgreementView.from_record(record)
                    saved = store.upsert(
                        record.without_document(now),
                        expected_version=record.version,
                    )
                    store.append_audit(
                        saved,
                        AuditAction.DOCUMENT_INVALIDATED,
                        occurred_at=now,
                        actor_id=actor_id,
                        payload={"ref": record.document.ref},
                    )
            logger.info("document_invalidated", extra={"ref": record.document.ref})
            return AgreementView.from_record(saved)

    def _generate_document(
        self,
        record: AgreementRecord,
        booking: BookingSnapshot,
        actor_id: str | None,
    ) -> tuple[AgreementRecord, AgreementKernelError | None]:
        """Generate and attach the document; caller holds the booking lock.

        Returns the committed record and, if generation did not succeed,
        the error that prevented it.  Errors raised while saving the
        outcome (ConflictError, StorageUnavailableError) propagate.
        """
        try:
            request = self._document_request(record, booking)
        except (ArtifactNotFoundError, ArtifactIntegrityError) as exc:
            logger.error(
                "signature_artifact_unusable",
                extra={"error_code": exc.code, "error": str(exc)},
            )
            saved = self._save(
                record,
                record.with_error(str(exc), self._clock.now()),
                AuditAction.AGREEMENT_ERRORED,
                {"error_code": exc.code, "reason": str(exc)},
                actor_id,
            )
            return saved, exc

        try:
            generated = self._run_generator(request)
        except DocumentGenerationFailedError as exc:
            logger.warning(
                "document_generation_failed",
                extra={
                    "error_code": exc.code,
                    "reason": exc.reason,
                    "attempt": record.document_attempts + 1,
                },
            )
            saved = self._save(
                record,
                record.with_document_failure(exc.reason, self._clock.now()),
                AuditAction.DOCUMENT_GENERATION_FAILED,
                {"error_code": exc.code, "reason": exc.reason},
                actor_id,
            )
            return saved, exc

        now = self._clock.now()
        document = DocumentRef(
            ref=generated.ref,
            filename=generated.filename,
            content_hash=generated.content_hash,
            generated_at=now,
            media_type=generated.media_type,
        )
        saved = self._save(
            record,
            record.with_document(document, now),
            AuditAction.DOCUMENT_GENERATED,
            {"ref": document.ref, "content_hash": document.content_hash},
            actor_id,
        )
        logger.info(
            "document_attached",
            extra={"ref": document.ref, "attempts": saved.document_attempts},
        )
        return saved, None

    def _document_request(
        self,
        record: AgreementRecord,
        booking: BookingSnapshot,
    ) -> DocumentRequest:
        tenant_ref = record.tenant_signature
        landlord_ref = record.landlord_signature
        with self._transaction(record.booking_id, "load_signatures") as store:
            tenant = store.get_artifact(tenant_ref.artifact_id, tenant_ref.content_hash)
            landlord = store.get_artifact(landlord_ref.artifact_id, landlord_ref.content_hash)
        return DocumentRequest.build(
            record.agreement_id,
            booking,
            tenant,
            landlord,
            self._filename_template,
        )

    def _run_generator(self, request: DocumentRequest) -> GeneratedDocument:
        """Run the generator on the worker pool, bounded by the timeout."""
        booking_id = request.booking.booking_id
        future = self._executor.submit(self._generator.generate, request)
        try:
            return future.result(timeout=self._document_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise DocumentGenerationTimeoutError(booking_id, self._document_timeout) from None
        except DocumentGenerationFailedError:
            raise
        except Exception as exc:
            # Generators are pluggable; any failure of theirs is a failed attempt
            raise DocumentGenerationFailedError(
                booking_id, f"{type(exc).__name__}: {exc}",
            ) from exc

    def _save(
        self,
        record: AgreementRecord,
        updated: AgreementRecord,
        action: AuditAction,
        payload: dict[str, Any],
        actor_id: str | None,
    ) -> AgreementRecord:
        with self._transaction(record.booking_id, action.value) as store:
            saved = store.upsert(updated, expected_version=record.version)
            store.append_audit(
                saved,
                action,
                occurred_at=updated.updated_at,
                actor_id=actor_id,
                payload=payload,
            )
        return saved

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_completed(self, booking_id: str) -> AgreementRecord:
        record = self._read(booking_id, "get_document")
        self._check_completed(booking_id, record)
        return record

    @staticmethod
    def _check_completed(booking_id: str, record: AgreementRecord | None) -> None:
        if record is None:
            raise DocumentNotReadyError(booking_id, AgreementStatus.NOT_INITIALIZED.value)
        if record.status is not AgreementStatus.COMPLETED:
            raise DocumentNotReadyError(booking_id, record.status.value)

    def _read(self, booking_id: str, operation: str) -> AgreementRecord | None:
        with self._transaction(booking_id, operation) as store:
            return store.get(booking_id)

    @contextmanager
    def _transaction(self, booking_id: str, operation: str) -> Iterator[AgreementStore]:
        """One committed-or-rolled-back unit of work.

        Database errors raised at commit time are translated the same way
        the store translates flush-time errors.
        """
        try:
            with session_scope(self._session_factory) as session:
                yield AgreementStore(session)
        except IntegrityError as exc:
            raise ConflictError(booking_id, None) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "transaction_failed",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise StorageUnavailableError(operation, str(exc)) from exc
