"""
Pytest fixtures for the agreement kernel test suite.

Provides:
- A fresh file-backed SQLite database per test (threads share it)
- Deterministic clock, booking B1 and an in-memory booking provider
- Real PDF generation into a temporary document directory
- Workflow engine factory with per-test overrides
- Captured structured logs
"""

import json
import logging
import threading
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from agreement_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from agreement_kernel.domain.agreement import Role, SigningPolicy
from agreement_kernel.domain.booking import (
    BookingSnapshot,
    InMemoryBookingProvider,
    PropertySnapshot,
)
from agreement_kernel.domain.clock import DeterministicClock
from agreement_kernel.exceptions import DocumentGenerationFailedError
from agreement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from agreement_kernel.services.document_generator import (
    FilesystemDocumentStorage,
    PdfAgreementGenerator,
)
from agreement_kernel.services.signature_capture import SignatureCapture
from agreement_kernel.services.workflow_engine import AgreementWorkflowEngine

TENANT_ID = "user-tenant-1"
LANDLORD_ID = "user-landlord-1"
STRANGER_ID = "user-stranger-9"

SIGNATURE_STROKES = [
    [(40, 120), (80, 60), (120, 140), (160, 70), (200, 110)],
    [(230, 90), (300, 95)],
    [(320, 100)],
]


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture agreement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.sign(...)
            logs = captured_logs()
            assert any(r["message"] == "agreement_signed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("agreement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'agreements.db'}"


@pytest.fixture
def db_engine(database_url):
    engine = init_engine_from_url(database_url)
    create_tables(engine)
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def booking():
    """Scenario B1: one tenant, one landlord, one flat."""
    return BookingSnapshot(
        booking_id="B1",
        tenant_id=TENANT_ID,
        landlord_id=LANDLORD_ID,
        property=PropertySnapshot(
            property_id="P-100",
            title="Two-bedroom flat, Riverside",
            address="12 River Road",
        ),
        start_date=date(2025, 4, 1),
        end_date=date(2026, 3, 31),
        rent_amount=Decimal("1450.00"),
        currency="EUR",
    )


@pytest.fixture
def booking_provider(booking):
    return InMemoryBookingProvider([booking])


@pytest.fixture
def capture():
    return SignatureCapture()


@pytest.fixture
def signature_png(capture):
    return capture.capture_to_artifact(SIGNATURE_STROKES)


# =============================================================================
# Documents
# =============================================================================


@pytest.fixture
def document_storage(tmp_path):
    return FilesystemDocumentStorage(tmp_path / "documents")


@pytest.fixture
def document_generator(document_storage):
    return PdfAgreementGenerator(document_storage)


class FlakyGenerator:
    """Fails the first ``failures`` calls, then delegates."""

    def __init__(self, inner, failures: int = 1):
        self.inner = inner
        self.failures = failures
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, request):
        with self._lock:
            self.calls += 1
            call = self.calls
        if call <= self.failures:
            raise DocumentGenerationFailedError(
                request.booking.booking_id, f"renderer unavailable (call {call})",
            )
        return self.inner.generate(request)


class BlockingGenerator:
    """Blocks until released, then delegates."""

    def __init__(self, inner):
        self.inner = inner
        self.release = threading.Event()
        self.calls = 0

    def generate(self, request):
        self.calls += 1
        self.release.wait(timeout=10)
        return self.inner.generate(request)


@pytest.fixture
def flaky_generator(document_generator):
    return FlakyGenerator(document_generator)


@pytest.fixture
def make_flaky_generator(document_generator):
    def _make(failures: int = 1) -> FlakyGenerator:
        return FlakyGenerator(document_generator, failures)

    return _make


@pytest.fixture
def blocking_generator(document_generator):
    generator = BlockingGenerator(document_generator)
    yield generator
    generator.release.set()


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def make_engine(session_factory, booking_provider, document_generator, deterministic_clock):
    """Factory for workflow engines; keyword arguments override defaults."""
    engines: list[AgreementWorkflowEngine] = []

    def _make(**overrides) -> AgreementWorkflowEngine:
        kwargs = dict(
            policy=SigningPolicy(first_signer=Role.TENANT),
            clock=deterministic_clock,
            document_timeout_seconds=10.0,
        )
        generator = overrides.pop("document_generator", document_generator)
        provider = overrides.pop("booking_provider", booking_provider)
        kwargs.update(overrides)
        engine = AgreementWorkflowEngine(session_factory, provider, generator, **kwargs)
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine):
    return make_engine()
