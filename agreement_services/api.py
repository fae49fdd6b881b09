"""
agreement_services.api -- Caller-facing agreement API.

Responsibility:
    The boundary between authenticated callers and the workflow engine.
    Resolves the caller's role on the booking, rejects callers who are not
    a party and callers claiming the other party's role, then delegates to
    the engine.  Results and errors are returned as JSON-ready envelopes.

Architecture position:
    Services -- outer layer over ``agreement_kernel``.  Transport-neutral;
    ``agreement_services.http`` adapts it to Flask.

Invariants enforced:
    - Identity-to-role checks happen here, before the engine is called.
      The engine only enforces role-vs-state legality.
    - Every kernel error becomes an error envelope carrying its code and
      ``retryable`` flag.  Non-kernel exceptions propagate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import uuid4

from agreement_kernel.domain.agreement import (
    AgreementView,
    DocumentRef,
    Role,
    ViewStatus,
)
from agreement_kernel.domain.booking import BookingProvider, BookingSnapshot
from agreement_kernel.domain.signature import Stroke
from agreement_kernel.exceptions import (
    AgreementKernelError,
    AgreementNotFoundError,
    ForbiddenError,
    StorageUnavailableError,
    UnauthorizedSignerError,
)
from agreement_kernel.logging_config import LogContext, get_logger
from agreement_kernel.services.document_generator import DocumentStorage
from agreement_kernel.services.workflow_engine import AgreementWorkflowEngine

logger = get_logger("api")

Envelope = dict[str, Any]


@dataclass(frozen=True)
class RequestContext:
    """Who is calling.  Authentication happened upstream."""

    user_id: str | None
    correlation_id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class DocumentFile:
    """The final PDF itself, for transports that serve it directly."""

    filename: str
    content: bytes
    media_type: str = "application/pdf"


def ok(data: Any) -> Envelope:
    return {"success": True, "data": data}


def error_envelope(exc: AgreementKernelError) -> Envelope:
    return {
        "success": False,
        "code": exc.code,
        "message": str(exc),
        "retryable": exc.retryable,
    }


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def document_data(document: DocumentRef) -> dict[str, Any]:
    return {"url": document.ref, "fileName": document.filename}


def status_data(view: AgreementView, viewer_role: Role | None) -> dict[str, Any]:
    """Status payload in the shape the web client renders."""
    agreement_id = str(view.agreement_id) if view.agreement_id else None
    can_sign = (
        viewer_role is not None
        and view.awaiting_role is viewer_role
        and not view.has_signed(viewer_role)
    )
    data: dict[str, Any] = {
        "status": view.status.value,
        "id": agreement_id,
        "agreementId": agreement_id,
        "bookingId": view.booking_id,
        "tenantSigned": view.tenant_signed,
        "landlordSigned": view.landlord_signed,
        "tenantSignedAt": _iso(view.tenant_signed_at),
        "landlordSignedAt": _iso(view.landlord_signed_at),
        "awaitingRole": view.awaiting_role.value if view.awaiting_role else None,
        "documentPending": view.document_pending,
        "viewerRole": viewer_role.value if viewer_role else None,
        "canSign": can_sign,
    }
    if view.document is not None:
        data["pdf"] = document_data(view.document)
        data["pdfUrl"] = view.document.ref
    if view.status is ViewStatus.ERROR:
        data["errorReason"] = view.error_reason
    return data


class AgreementApi:
    """Transport-neutral entry points for the signing UI."""

    def __init__(
        self,
        engine: AgreementWorkflowEngine,
        booking_provider: BookingProvider,
        storage: DocumentStorage | None = None,
    ):
        self.engine = engine
        self.bookings = booking_provider
        self.storage = storage

    # ------------------------------------------------------------------

    def get_status(self, ctx: RequestContext, booking_id: str) -> Envelope:
        def run() -> dict[str, Any]:
            booking, role = self._authorize(ctx, booking_id)
            view = self.engine.get_status(booking.booking_id)
            return status_data(view, role)

        return self._handle(ctx, "get_status", booking_id, run)

    def sign(
        self,
        ctx: RequestContext,
        booking_id: str,
        role: str,
        signature_image: bytes,
    ) -> Envelope:
        def run() -> dict[str, Any]:
            booking, claimed = self._authorize_signer(ctx, booking_id, role)
            view = self.engine.sign(
                booking.booking_id, claimed, signature_image, actor_id=ctx.user_id,
            )
            return status_data(view, claimed)

        return self._handle(ctx, "sign", booking_id, run)

    def sign_strokes(
        self,
        ctx: RequestContext,
        booking_id: str,
        role: str,
        strokes: list[Stroke],
    ) -> Envelope:
        def run() -> dict[str, Any]:
            booking, claimed = self._authorize_signer(ctx, booking_id, role)
            view = self.engine.sign_strokes(
                booking.booking_id, claimed, strokes, actor_id=ctx.user_id,
            )
            return status_data(view, claimed)

        return self._handle(ctx, "sign", booking_id, run)

    def get_document(self, ctx: RequestContext, booking_id: str) -> Envelope:
        def run() -> dict[str, Any]:
            booking, _ = self._authorize(ctx, booking_id)
            document = self.engine.get_document(booking.booking_id, actor_id=ctx.user_id)
            return {"pdf": document_data(document)}

        return self._handle(ctx, "get_document", booking_id, run)

    def download_document(self, ctx: RequestContext, booking_id: str) -> Envelope:
        """Envelope whose ``data`` is a ``DocumentFile`` (not JSON-ready)."""

        def run() -> DocumentFile:
            booking, _ = self._authorize(ctx, booking_id)
            document = self.engine.get_document(booking.booking_id, actor_id=ctx.user_id)
            if self.storage is None:
                raise StorageUnavailableError("download_document", "no document storage")
            try:
                content = self.storage.get(document.ref)
            except OSError as exc:
                raise StorageUnavailableError("download_document", str(exc)) from exc
            return DocumentFile(filename=document.filename, content=content)

        return self._handle(ctx, "download_document", booking_id, run)

    def booking_for_agreement(self, ctx: RequestContext, agreement_id: str) -> Envelope:
        """Resolve an existing agreement id to its booking for a party to it."""

        def run() -> dict[str, Any]:
            booking = self.bookings.get_booking(self.engine.booking_id_for(agreement_id))
            if booking.role_of(ctx.user_id) is None:
                # the booking id stays hidden from non-parties
                raise AgreementNotFoundError(agreement_id)
            return {"bookingId": booking.booking_id, "agreementId": agreement_id}

        return self._handle(ctx, "booking_for_agreement", None, run)

    def get_history(self, ctx: RequestContext, booking_id: str) -> Envelope:
        def run() -> list[dict[str, Any]]:
            booking, _ = self._authorize(ctx, booking_id)
            return [
                {
                    "action": event.action.value,
                    "actorRole": event.actor_role,
                    "occurredAt": _iso(event.occurred_at),
                    "payloadHash": event.payload_hash,
                }
                for event in self.engine.get_history(booking.booking_id)
            ]

        return self._handle(ctx, "get_history", booking_id, run)

    # ------------------------------------------------------------------

    def _authorize(
        self,
        ctx: RequestContext,
        booking_id: str,
    ) -> tuple[BookingSnapshot, Role]:
        booking = self.bookings.get_booking(booking_id)
        role = booking.role_of(ctx.user_id)
        if role is None:
            raise ForbiddenError(booking_id, ctx.user_id)
        return booking, role

    def _authorize_signer(
        self,
        ctx: RequestContext,
        booking_id: str,
        role: str,
    ) -> tuple[BookingSnapshot, Role]:
        claimed = Role.parse(role)
        booking, actual = self._authorize(ctx, booking_id)
        if claimed is not actual:
            raise UnauthorizedSignerError(booking_id, ctx.user_id, claimed.value)
        return booking, claimed

    def _handle(
        self,
        ctx: RequestContext,
        operation: str,
        booking_id: str | None,
        run: Callable[[], Any],
    ) -> Envelope:
        with LogContext.bind(
            correlation_id=ctx.correlation_id,
            booking_id=booking_id,
            actor_id=ctx.user_id,
        ):
            try:
                return ok(run())
            except AgreementKernelError as exc:
                log = logger.error if exc.retryable else logger.info
                log(
                    "api_request_failed",
                    extra={
                        "operation": operation,
                        "error_code": exc.code,
                        "retryable": exc.retryable,
                    },
                )
                return error_envelope(exc)
