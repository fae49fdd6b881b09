"""
Tests for AgreementStore: compare-and-swap writes, artifacts, audit trail.

Each test runs inside one session; nothing is committed unless the test
says so.
"""

from dataclasses import replace
from uuid import uuid4

import pytest
from sqlalchemy import text

from agreement_kernel.domain.agreement import (
    AgreementRecord,
    AgreementStatus,
    DocumentRef,
    Role,
    SigningPolicy,
)
from agreement_kernel.domain.audit import AuditAction
from agreement_kernel.domain.signature import SignatureArtifact
from agreement_kernel.exceptions import (
    AgreementInvariantError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    ConflictError,
    ImmutabilityViolationError,
)
from agreement_kernel.models.artifact import SignatureArtifactModel
from agreement_kernel.models.audit_event import AgreementAuditEventModel
from agreement_kernel.services.agreement_store import AgreementStore
from agreement_kernel.utils.hashing import hash_payload


@pytest.fixture
def store(session):
    return AgreementStore(session)


@pytest.fixture
def now(deterministic_clock):
    return deterministic_clock.now()


def _artifact(record, role, content, now):
    return SignatureArtifact.create(
        agreement_id=record.agreement_id,
        booking_id=record.booking_id,
        role=role,
        content=content,
        width=120,
        height=40,
        uploaded_at=now,
        actor_id=f"user-{role.value}",
    )


def _first_signature(store, signature_png, now, booking_id="B1"):
    """Insert an agreement signed by the tenant; returns (record, artifact)."""
    draft = AgreementRecord.draft(booking_id, SigningPolicy(), now)
    artifact = store.put_artifact(_artifact(draft, Role.TENANT, signature_png, now))
    record = store.upsert(
        draft.with_signature(artifact.to_ref(), AgreementStatus.PENDING_LANDLORD, now),
        expected_version=None,
    )
    return record, artifact


# =============================================================================
# Agreements
# =============================================================================


class TestAgreementWrites:
    def test_get_missing_returns_none(self, store):
        assert store.get("B-unknown") is None

    def test_insert_starts_at_version_one(self, store, signature_png, now):
        record, artifact = _first_signature(store, signature_png, now)
        assert record.version == 1

        loaded = store.get("B1")
        assert loaded == record
        assert loaded.tenant_signature.artifact_id == artifact.artifact_id
        assert loaded.created_at.tzinfo is not None

    def test_compare_and_swap_advances_version(
        self, store, signature_png, now, deterministic_clock,
    ):
        record, _ = _first_signature(store, signature_png, now)
        later = deterministic_clock.tick()
        landlord = store.put_artifact(_artifact(record, Role.LANDLORD, signature_png, later))
        completed = store.upsert(
            record.with_signature(landlord.to_ref(), AgreementStatus.COMPLETED, later),
            expected_version=1,
        )

        assert completed.version == 2
        loaded = store.get("B1")
        assert loaded.status is AgreementStatus.COMPLETED
        assert loaded.version == 2
        assert loaded.updated_at == later
        assert loaded.created_at == now

    def test_stale_version_conflicts(self, store, signature_png, now):
        record, _ = _first_signature(store, signature_png, now)
        failed = record.with_document_failure("boom", now)
        store.upsert(failed, expected_version=1)

        with pytest.raises(ConflictError) as exc_info:
            store.upsert(failed.with_document_failure("again", now), expected_version=1)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.retryable

    def test_second_insert_for_booking_conflicts(self, store, signature_png, now):
        _first_signature(store, signature_png, now)
        with pytest.raises(ConflictError) as exc_info:
            _first_signature(store, signature_png, now)
        assert exc_info.value.expected_version is None

    def test_invariants_checked_before_write(self, store, signature_png, now):
        record, _ = _first_signature(store, signature_png, now)
        document = DocumentRef(
            ref="x/y.pdf", filename="y.pdf", content_hash="0" * 64, generated_at=now,
        )
        with pytest.raises(AgreementInvariantError):
            store.upsert(replace(record, document=document), expected_version=1)
        assert store.get("B1").version == 1

    def test_draft_is_never_stored(self, store, now):
        draft = AgreementRecord.draft("B1", SigningPolicy(), now)
        with pytest.raises(AgreementInvariantError):
            store.upsert(draft, expected_version=None)

    def test_document_round_trip(self, store, signature_png, now):
        record, _ = _first_signature(store, signature_png, now)
        landlord = store.put_artifact(_artifact(record, Role.LANDLORD, signature_png, now))
        completed = store.upsert(
            record.with_signature(landlord.to_ref(), AgreementStatus.COMPLETED, now),
            expected_version=1,
        )
        document = DocumentRef(
            ref="https://files.example.test/abc/rental-agreement-B1.pdf",
            filename="rental-agreement-B1.pdf",
            content_hash="c" * 64,
            generated_at=now,
        )
        store.upsert(completed.with_document(document, now), expected_version=2)

        loaded = store.get("B1")
        assert loaded.document == document
        assert loaded.document_attempts == 1


# =============================================================================
# Artifacts
# =============================================================================


class TestArtifacts:
    def test_get_artifact_verifies_hash(self, store, signature_png, now):
        _, artifact = _first_signature(store, signature_png, now)
        loaded = store.get_artifact(artifact.artifact_id, artifact.content_hash)
        assert loaded.content == signature_png
        assert loaded.verify()

    def test_missing_artifact(self, store):
        with pytest.raises(ArtifactNotFoundError):
            store.get_artifact(uuid4())

    def test_expected_hash_mismatch(self, store, signature_png, now):
        _, artifact = _first_signature(store, signature_png, now)
        with pytest.raises(ArtifactIntegrityError) as exc_info:
            store.get_artifact(artifact.artifact_id, "f" * 64)
        assert exc_info.value.expected_hash == "f" * 64

    def test_tampered_bytes_detected(self, store, session, signature_png, now):
        _, artifact = _first_signature(store, signature_png, now)
        # Raw SQL bypasses the ORM immutability listeners
        session.execute(
            text("UPDATE signature_artifacts SET content = :c WHERE id = :id"),
            {"c": b"tampered", "id": str(artifact.artifact_id)},
        )
        session.expire_all()

        with pytest.raises(ArtifactIntegrityError):
            store.get_artifact(artifact.artifact_id)

    def test_one_artifact_per_role(self, store, signature_png, now):
        record, _ = _first_signature(store, signature_png, now)
        with pytest.raises(ConflictError):
            store.put_artifact(_artifact(record, Role.TENANT, signature_png, now))

    def test_artifacts_for(self, store, signature_png, now):
        record, artifact = _first_signature(store, signature_png, now)
        assert store.artifacts_for(record.agreement_id) == {Role.TENANT: artifact}


class TestImmutability:
    def test_artifact_update_rejected(self, store, session, signature_png, now):
        _, artifact = _first_signature(store, signature_png, now)
        model = session.get(SignatureArtifactModel, artifact.artifact_id)
        model.content = b"other"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_artifact_delete_rejected(self, store, session, signature_png, now):
        _, artifact = _first_signature(store, signature_png, now)
        session.delete(session.get(SignatureArtifactModel, artifact.artifact_id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_event_update_rejected(self, store, session, signature_png, now):
        record, _ = _first_signature(store, signature_png, now)
        event = store.append_audit(
            record, AuditAction.AGREEMENT_CREATED, occurred_at=now, payload={},
        )
        model = session.get(AgreementAuditEventModel, event.event_id)
        model.action = AuditAction.AGREEMENT_ERRORED.value
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "AgreementAuditEvent"


# =============================================================================
# Audit trail
# =============================================================================


class TestAuditTrail:
    def test_events_are_ordered_and_hashed(self, store, signature_png, now):
        record, artifact = _first_signature(store, signature_png, now)
        store.append_audit(
            record, AuditAction.AGREEMENT_CREATED, occurred_at=now,
            actor_id="user-tenant", actor_role="tenant", payload={"first_signer": "tenant"},
        )
        store.append_audit(
            record, AuditAction.SIGNATURE_RECORDED, occurred_at=now,
            actor_id="user-tenant", actor_role="tenant",
            payload={"artifact_id": artifact.artifact_id, "role": Role.TENANT},
        )

        history = store.history("B1")
        assert [e.action for e in history] == [
            AuditAction.AGREEMENT_CREATED,
            AuditAction.SIGNATURE_RECORDED,
        ]
        recorded = history[1]
        assert recorded.payload == {"artifact_id": str(artifact.artifact_id), "role": "tenant"}
        assert recorded.payload_hash == hash_payload(recorded.payload)
        assert recorded.actor_role == "tenant"

    def test_history_of_unknown_booking_is_empty(self, store):
        assert store.history("B-none") == []

    def test_history_is_per_booking(self, store, signature_png, now):
        r1, _ = _first_signature(store, signature_png, now, booking_id="B1")
        r2, _ = _first_signature(store, signature_png, now, booking_id="B2")
        store.append_audit(r1, AuditAction.AGREEMENT_CREATED, occurred_at=now)
        store.append_audit(r2, AuditAction.AGREEMENT_CREATED, occurred_at=now)
        store.append_audit(r2, AuditAction.SIGNATURE_RECORDED, occurred_at=now)

        assert len(store.history("B1")) == 1
        assert len(store.history("B2")) == 2
