"""
agreement_kernel.services.agreement_store -- Durable agreement state.

Responsibility:
    Reads and writes agreement records, signature artifacts and audit
    events.  Translates database failures into kernel exceptions so that
    callers never see SQLAlchemy types.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, utils/.

Invariants enforced:
    - One agreement per booking (UNIQUE booking_id; a losing INSERT raises
      ConflictError).
    - Compare-and-swap: ``upsert`` with an expected version only succeeds
      if the stored version still equals it, and then advances it by one.
    - Records are checked with ``AgreementRecord.check_invariants`` before
      every write.
    - Artifacts are write-once and hash-verified on every read.

Failure modes:
    - ConflictError on a lost race (duplicate key or stale version).
    - ArtifactNotFoundError / ArtifactIntegrityError on artifact reads.
    - StorageUnavailableError on any other database error.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agreement_kernel.domain.agreement import AgreementRecord, Role
from agreement_kernel.domain.audit import AuditAction, AuditEventRecord
from agreement_kernel.domain.signature import SignatureArtifact, content_hash
from agreement_kernel.exceptions import (
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    ConflictError,
    StorageUnavailableError,
)
from agreement_kernel.logging_config import get_logger
from agreement_kernel.models.agreement import AgreementModel
from agreement_kernel.models.artifact import SignatureArtifactModel
from agreement_kernel.models.audit_event import AgreementAuditEventModel
from agreement_kernel.services.base import BaseService
from agreement_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.agreement_store")


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise non-integrity database errors as StorageUnavailableError."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error(
            "storage_operation_failed",
            extra={"operation": operation, "error": type(exc).__name__},
        )
        reason = getattr(exc, "orig", None) or exc
        raise StorageUnavailableError(operation, str(reason)) from exc


class AgreementStore(BaseService[AgreementModel]):
    """
    Agreement persistence bound to one session (one transaction).

    Contract:
        Every method flushes; none commits.  A record returned by ``upsert``
        carries the version now stored in the database.
    """

    # ------------------------------------------------------------------
    # Agreements
    # ------------------------------------------------------------------

    def get(self, booking_id: str) -> AgreementRecord | None:
        stmt = (
            select(AgreementModel)
            .where(AgreementModel.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        with _storage_errors("get"):
            model = self.session.execute(stmt).scalar_one_or_none()
        return model.to_record() if model is not None else None

    def get_by_id(self, agreement_id: UUID) -> AgreementRecord | None:
        with _storage_errors("get_by_id"):
            model = self.session.get(AgreementModel, agreement_id, populate_existing=True)
        return model.to_record() if model is not None else None

    def upsert(
        self,
        record: AgreementRecord,
        expected_version: int | None,
    ) -> AgreementRecord:
        """Write ``record`` and return it with its new version.

        ``expected_version=None`` inserts a new agreement; otherwise the
        stored row is replaced only if its version still equals
        ``expected_version``.

        Raises:
            AgreementInvariantError: If the record is inconsistent.
            ConflictError: If another writer got there first.
            StorageUnavailableError: On database failure.
        """
        record.check_invariants()

        if expected_version is None:
            model = AgreementModel.from_record(record, version=1)
            try:
                with _storage_errors("upsert"):
                    self.session.add(model)
                    self.session.flush()
            except IntegrityError as exc:
                logger.warning(
                    "agreement_insert_conflict",
                    extra={"booking_id": record.booking_id},
                )
                raise ConflictError(record.booking_id, None) from exc
            new_version = 1
        else:
            new_version = expected_version + 1
            stmt = (
                update(AgreementModel)
                .where(
                    AgreementModel.id == record.agreement_id,
                    AgreementModel.version == expected_version,
                )
                .values(version=new_version, **AgreementModel.column_values(record))
                .execution_options(synchronize_session=False)
            )
            try:
                with _storage_errors("upsert"):
                    result = self.session.execute(stmt)
            except IntegrityError as exc:
                raise ConflictError(record.booking_id, expected_version) from exc
            if result.rowcount != 1:
                logger.warning(
                    "agreement_version_conflict",
                    extra={
                        "booking_id": record.booking_id,
                        "expected_version": expected_version,
                    },
                )
                raise ConflictError(record.booking_id, expected_version)

        logger.debug(
            "agreement_written",
            extra={
                "booking_id": record.booking_id,
                "status": record.status.value,
                "version": new_version,
            },
        )
        return _with_version(record, new_version)

    # ------------------------------------------------------------------
    # Signature artifacts
    # ------------------------------------------------------------------

    def put_artifact(self, artifact: SignatureArtifact) -> SignatureArtifact:
        """Store a new artifact.

        Raises:
            ConflictError: If the role already has an artifact on this
                agreement.
        """
        try:
            with _storage_errors("put_artifact"):
                self.session.add(SignatureArtifactModel.from_artifact(artifact))
                self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "artifact_insert_conflict",
                extra={"booking_id": artifact.booking_id, "role": artifact.role.value},
            )
            raise ConflictError(artifact.booking_id, None) from exc
        return artifact

    def get_artifact(
        self,
        artifact_id: UUID,
        expected_hash: str | None = None,
    ) -> SignatureArtifact:
        """Load an artifact and verify its bytes.

        Raises:
            ArtifactNotFoundError: If no artifact has this id.
            ArtifactIntegrityError: If the bytes do not hash to the value
                recorded on the artifact (or to ``expected_hash``).
        """
        with _storage_errors("get_artifact"):
            model = self.session.get(SignatureArtifactModel, artifact_id)
        if model is None:
            raise ArtifactNotFoundError(str(artifact_id))

        actual = content_hash(model.content)
        for expected in (model.content_hash, expected_hash):
            if expected is not None and actual != expected:
                raise ArtifactIntegrityError(str(artifact_id), expected, actual)
        return model.to_artifact()

    def artifacts_for(self, agreement_id: UUID) -> dict[Role, SignatureArtifact]:
        """All artifacts of an agreement, keyed by role (unverified)."""
        stmt = select(SignatureArtifactModel).where(
            SignatureArtifactModel.agreement_id == agreement_id
        )
        with _storage_errors("artifacts_for"):
            models = self.session.execute(stmt).scalars().all()
        return {Role(m.role): m.to_artifact() for m in models}

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def append_audit(
        self,
        record: AgreementRecord,
        action: AuditAction,
        *,
        occurred_at: datetime,
        actor_id: str | None = None,
        actor_role: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEventRecord:
        body = to_json_safe(payload or {})
        with _storage_errors("append_audit"):
            last_seq = self.session.execute(
                select(func.max(AgreementAuditEventModel.seq)).where(
                    AgreementAuditEventModel.agreement_id == record.agreement_id
                )
            ).scalar()
        model = AgreementAuditEventModel(
            agreement_id=record.agreement_id,
            booking_id=record.booking_id,
            seq=(last_seq or 0) + 1,
            action=action.value,
            actor_id=actor_id,
            actor_role=actor_role,
            occurred_at=occurred_at,
            payload=body,
            payload_hash=hash_payload(body),
        )
        try:
            with _storage_errors("append_audit"):
                self.session.add(model)
                self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(record.booking_id, record.version) from exc
        return model.to_record()

    def history(self, booking_id: str) -> list[AuditEventRecord]:
        stmt = (
            select(AgreementAuditEventModel)
            .where(AgreementAuditEventModel.booking_id == booking_id)
            .order_by(AgreementAuditEventModel.seq)
        )
        with _storage_errors("history"):
            models = self.session.execute(stmt).scalars().all()
        return [m.to_record() for m in models]


def _with_version(record: AgreementRecord, version: int) -> AgreementRecord:
    return replace(record, version=version)
