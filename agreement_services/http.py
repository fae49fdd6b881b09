"""
agreement_services.http -- Flask adapter for the agreement API.

Routes (relative to ``url_prefix``):
    GET  /bookings/<booking_id>/rental-agreement
    POST /bookings/<booking_id>/rental-agreement/sign/<role>
    GET  /bookings/<booking_id>/rental-agreement/document
    GET  /bookings/<booking_id>/rental-agreement/document/file
    GET  /bookings/<booking_id>/rental-agreement/history
    POST /agreements/<agreement_id>/sign/<role>

The signature is taken from the multipart field ``signature``, from a JSON
body ``{"strokes": [[[x, y], ...], ...]}``, or from the raw request body.
Caller identity comes from ``identity_resolver`` (default: the
``X-User-Id`` header set by the authenticating proxy).

Without a public base URL the document storage hands out bare keys; those
are replaced in responses by the ``document/file`` route, which streams
the PDF to parties of the booking.
"""

from __future__ import annotations

import io
from typing import Any, Callable
from urllib.parse import urlsplit

from flask import Blueprint, Flask, Request, jsonify, request, send_file, url_for

from agreement_kernel.exceptions import InvalidSignatureImageError
from agreement_kernel.logging_config import get_logger
from agreement_services.api import AgreementApi, Envelope, RequestContext, error_envelope

logger = get_logger("http")

USER_HEADER = "X-User-Id"
CORRELATION_HEADER = "X-Correlation-Id"

STATUS_BY_CODE: dict[str, int] = {
    "EMPTY_INPUT": 400,
    "INVALID_SIGNATURE_IMAGE": 400,
    "INVALID_ROLE": 400,
    "FORBIDDEN": 403,
    "UNAUTHORIZED_SIGNER": 403,
    "BOOKING_NOT_FOUND": 404,
    "AGREEMENT_NOT_FOUND": 404,
    "WRONG_TURN": 409,
    "CONFLICT": 409,
    "DOCUMENT_NOT_READY": 409,
    "DOCUMENT_GENERATION_FAILED": 502,
    "DOCUMENT_GENERATION_TIMEOUT": 502,
    "STORAGE_UNAVAILABLE": 503,
}

IdentityResolver = Callable[[Request], str | None]


def header_identity(req: Request) -> str | None:
    return req.headers.get(USER_HEADER) or None


def _respond(envelope: Envelope) -> tuple[Any, int]:
    if envelope["success"]:
        return jsonify(envelope), 200
    return jsonify(envelope), STATUS_BY_CODE.get(envelope["code"], 500)


def _parse_strokes(raw: Any) -> list[list[tuple[float, float]]]:
    if not isinstance(raw, list):
        raise InvalidSignatureImageError("strokes must be a list")
    strokes = []
    for stroke in raw:
        if not isinstance(stroke, list):
            raise InvalidSignatureImageError("each stroke must be a list of points")
        points = []
        for point in stroke:
            if (
                not isinstance(point, (list, tuple))
                or len(point) != 2
                or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in point)
            ):
                raise InvalidSignatureImageError("each point must be [x, y]")
            points.append((float(point[0]), float(point[1])))
        strokes.append(points)
    return strokes


def _is_public_url(ref: str) -> bool:
    return bool(urlsplit(ref).scheme)


def _link_document(envelope: Envelope, booking_id: str) -> Envelope:
    """Point bare storage keys at the download route."""
    data = envelope.get("data") if envelope["success"] else None
    if not isinstance(data, dict) or "pdf" not in data:
        return envelope
    if _is_public_url(data["pdf"]["url"]):
        return envelope
    url = url_for(".download_document", booking_id=booking_id)
    data["pdf"] = {**data["pdf"], "url": url}
    if "pdfUrl" in data:
        data["pdfUrl"] = url
    return envelope


def create_blueprint(
    api: AgreementApi,
    identity_resolver: IdentityResolver = header_identity,
) -> Blueprint:
    bp = Blueprint("rental_agreement", __name__)

    def context() -> RequestContext:
        user_id = identity_resolver(request)
        correlation_id = request.headers.get(CORRELATION_HEADER)
        if correlation_id:
            return RequestContext(user_id=user_id, correlation_id=correlation_id)
        return RequestContext(user_id=user_id)

    def sign_from_request(ctx: RequestContext, booking_id: str, role: str) -> Envelope:
        upload = request.files.get("signature")
        if upload is not None:
            return api.sign(ctx, booking_id, role, upload.read())

        if request.is_json:
            body = request.get_json(silent=True)
            if body is None:
                body = {}
            try:
                if not isinstance(body, dict):
                    raise InvalidSignatureImageError("body must be an object")
                strokes = _parse_strokes(body.get("strokes"))
            except InvalidSignatureImageError as exc:
                return error_envelope(exc)
            return api.sign_strokes(ctx, booking_id, role, strokes)

        return api.sign(ctx, booking_id, role, request.get_data())

    @bp.get("/bookings/<booking_id>/rental-agreement")
    def get_status(booking_id: str):
        return _respond(_link_document(api.get_status(context(), booking_id), booking_id))

    @bp.post("/bookings/<booking_id>/rental-agreement/sign/<role>")
    def sign(booking_id: str, role: str):
        envelope = sign_from_request(context(), booking_id, role)
        return _respond(_link_document(envelope, booking_id))

    @bp.post("/agreements/<agreement_id>/sign/<role>")
    def sign_agreement(agreement_id: str, role: str):
        # Only for agreements that exist; the first signature goes through
        # the booking route.
        ctx = context()
        resolved = api.booking_for_agreement(ctx, agreement_id)
        if not resolved["success"]:
            return _respond(resolved)
        booking_id = resolved["data"]["bookingId"]
        envelope = sign_from_request(ctx, booking_id, role)
        return _respond(_link_document(envelope, booking_id))

    @bp.get("/bookings/<booking_id>/rental-agreement/document")
    def get_document(booking_id: str):
        return _respond(_link_document(api.get_document(context(), booking_id), booking_id))

    @bp.get("/bookings/<booking_id>/rental-agreement/document/file")
    def download_document(booking_id: str):
        envelope = api.download_document(context(), booking_id)
        if not envelope["success"]:
            return _respond(envelope)
        document = envelope["data"]
        return send_file(
            io.BytesIO(document.content),
            mimetype=document.media_type,
            as_attachment=True,
            download_name=document.filename,
        )

    @bp.get("/bookings/<booking_id>/rental-agreement/history")
    def get_history(booking_id: str):
        return _respond(api.get_history(context(), booking_id))

    return bp


def create_app(
    api: AgreementApi,
    *,
    identity_resolver: IdentityResolver = header_identity,
    url_prefix: str = "",
    max_upload_bytes: int | None = None,
) -> Flask:
    """Flask application serving the agreement routes."""
    app = Flask(__name__)
    if max_upload_bytes is not None:
        # Multipart framing adds overhead on top of the image itself
        app.config["MAX_CONTENT_LENGTH"] = max_upload_bytes + 64 * 1024
    app.register_blueprint(
        create_blueprint(api, identity_resolver),
        url_prefix=url_prefix or None,
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info("http_app_created", extra={"url_prefix": url_prefix or "/"})
    return app
