"""
Tests for the Flask adapter: routes, payload formats, status codes.
"""

import io

import pytest

from agreement_services.api import AgreementApi
from agreement_services.http import create_app

TENANT = {"X-User-Id": "user-tenant-1"}
LANDLORD = {"X-User-Id": "user-landlord-1"}

BASE = "/api/bookings/B1/rental-agreement"


@pytest.fixture
def app(engine, booking_provider, document_storage):
    return create_app(
        AgreementApi(engine, booking_provider, document_storage),
        url_prefix="/api",
        max_upload_bytes=200_000,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def _upload(client, role, headers, png):
    return client.post(
        f"{BASE}/sign/{role}",
        data={"signature": (io.BytesIO(png), "signature.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )


class TestRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_status(self, client):
        response = client.get(BASE, headers=TENANT)
        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["data"]["status"] == "NOT_INITIALIZED"

    def test_multipart_signing_flow(self, client, signature_png):
        first = _upload(client, "tenant", TENANT, signature_png)
        assert first.status_code == 200
        assert first.get_json()["data"]["status"] == "PENDING_LANDLORD"

        second = _upload(client, "landlord", LANDLORD, signature_png)
        data = second.get_json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["pdf"]["fileName"] == "rental-agreement-B1.pdf"
        assert data["pdf"]["url"] == f"{BASE}/document/file"
        assert data["pdfUrl"] == data["pdf"]["url"]

        document = client.get(f"{BASE}/document", headers=TENANT)
        assert document.status_code == 200
        assert document.get_json()["data"]["pdf"] == data["pdf"]

        history = client.get(f"{BASE}/history", headers=LANDLORD)
        assert len(history.get_json()["data"]) == 5

    def test_json_strokes(self, client):
        response = client.post(
            f"{BASE}/sign/tenant",
            json={"strokes": [[[40, 120], [80, 60], [120, 140]], [[300, 90]]]},
            headers=TENANT,
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["tenantSigned"] is True

    def test_raw_body(self, client, signature_png):
        response = client.post(
            f"{BASE}/sign/tenant",
            data=signature_png,
            headers={**TENANT, "Content-Type": "image/png"},
        )
        assert response.status_code == 200


class TestErrorStatusCodes:
    def test_wrong_turn_is_409(self, client, signature_png):
        response = _upload(client, "landlord", LANDLORD, signature_png)
        assert response.status_code == 409
        assert response.get_json()["code"] == "WRONG_TURN"

    def test_stranger_is_403(self, client):
        response = client.get(BASE, headers={"X-User-Id": "user-stranger-9"})
        assert response.status_code == 403

    def test_missing_identity_is_403(self, client):
        assert client.get(BASE).status_code == 403

    def test_claiming_other_role_is_403(self, client, signature_png):
        response = _upload(client, "landlord", TENANT, signature_png)
        assert response.status_code == 403
        assert response.get_json()["code"] == "UNAUTHORIZED_SIGNER"

    def test_unknown_booking_is_404(self, client):
        response = client.get("/api/bookings/B404/rental-agreement", headers=TENANT)
        assert response.status_code == 404

    def test_invalid_role_is_400(self, client, signature_png):
        assert _upload(client, "agent", TENANT, signature_png).status_code == 400

    def test_empty_upload_is_400(self, client):
        response = _upload(client, "tenant", TENANT, b"")
        assert response.status_code == 400
        assert response.get_json()["code"] == "EMPTY_INPUT"

    def test_garbage_upload_is_400(self, client):
        response = _upload(client, "tenant", TENANT, b"definitely not an image")
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_SIGNATURE_IMAGE"

    @pytest.mark.parametrize(
        "body",
        [
            {"strokes": "scribble"},
            [[[1, 2], [3, 4]]],
            "scribble",
            {"strokes": [[["x", 1]]]},
            {"strokes": [[[1, 2, 3]]]},
            {},
        ],
    )
    def test_malformed_strokes_are_400(self, client, body):
        response = client.post(f"{BASE}/sign/tenant", json=body, headers=TENANT)
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_SIGNATURE_IMAGE"

    def test_document_not_ready_is_409(self, client):
        response = client.get(f"{BASE}/document", headers=TENANT)
        assert response.status_code == 409
        assert response.get_json()["code"] == "DOCUMENT_NOT_READY"

    def test_oversized_upload_is_413(self, client):
        response = _upload(client, "tenant", TENANT, b"\x89PNG" + b"\x00" * 400_000)
        assert response.status_code == 413

    def test_correlation_id_is_propagated(self, client, captured_logs, signature_png):
        _upload(client, "landlord", {**LANDLORD, "X-Correlation-Id": "req-42"}, signature_png)
        failures = [r for r in captured_logs() if r["message"] == "api_request_failed"]
        assert failures[-1]["correlation_id"] == "req-42"
        assert failures[-1]["error_code"] == "WRONG_TURN"


class TestDocumentDownload:
    def _complete(self, client, png):
        assert _upload(client, "tenant", TENANT, png).status_code == 200
        return _upload(client, "landlord", LANDLORD, png).get_json()["data"]

    def test_link_serves_the_pdf(self, client, signature_png):
        data = self._complete(client, signature_png)

        response = client.get(data["pdf"]["url"], headers=TENANT)

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data.startswith(b"%PDF")
        assert "rental-agreement-B1.pdf" in response.headers["Content-Disposition"]

    def test_both_parties_get_the_same_bytes(self, client, signature_png):
        url = self._complete(client, signature_png)["pdf"]["url"]
        assert client.get(url, headers=TENANT).data == client.get(url, headers=LANDLORD).data

    def test_not_ready_is_409(self, client, signature_png):
        _upload(client, "tenant", TENANT, signature_png)
        response = client.get(f"{BASE}/document/file", headers=TENANT)
        assert response.status_code == 409
        assert response.get_json()["code"] == "DOCUMENT_NOT_READY"

    def test_stranger_is_403(self, client, signature_png):
        self._complete(client, signature_png)
        response = client.get(f"{BASE}/document/file", headers={"X-User-Id": "user-stranger-9"})
        assert response.status_code == 403

    def test_missing_file_is_503(self, client, document_storage, signature_png):
        data = self._complete(client, signature_png)
        for path in list(document_storage.root.rglob("*.pdf")):
            path.unlink()

        response = client.get(data["pdf"]["url"], headers=TENANT)
        assert response.status_code == 503
        assert response.get_json()["code"] == "STORAGE_UNAVAILABLE"


class TestAgreementRoute:
    def test_second_signature_by_agreement_id(self, client, signature_png):
        first = _upload(client, "tenant", TENANT, signature_png).get_json()["data"]

        response = client.post(
            f"/api/agreements/{first['id']}/sign/landlord",
            data={"signature": (io.BytesIO(signature_png), "signature.png", "image/png")},
            headers=LANDLORD,
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["bookingId"] == "B1"
        assert data["pdf"]["url"] == f"{BASE}/document/file"

    def test_wrong_turn_still_applies(self, client, signature_png):
        first = _upload(client, "tenant", TENANT, signature_png).get_json()["data"]
        response = client.post(
            f"/api/agreements/{first['id']}/sign/tenant",
            data=signature_png,
            headers={**TENANT, "Content-Type": "image/png"},
        )
        assert response.status_code == 409

    @pytest.mark.parametrize(
        "agreement_id", ["not-a-uuid", "00000000-0000-4000-8000-000000000000"],
    )
    def test_unknown_agreement_is_404(self, client, agreement_id, signature_png):
        response = client.post(
            f"/api/agreements/{agreement_id}/sign/tenant",
            data=signature_png,
            headers={**TENANT, "Content-Type": "image/png"},
        )
        assert response.status_code == 404
        assert response.get_json()["code"] == "AGREEMENT_NOT_FOUND"

    def test_stranger_gets_404(self, client, signature_png):
        first = _upload(client, "tenant", TENANT, signature_png).get_json()["data"]
        response = client.post(
            f"/api/agreements/{first['id']}/sign/landlord",
            data=signature_png,
            headers={"X-User-Id": "user-stranger-9", "Content-Type": "image/png"},
        )
        assert response.status_code == 404
        assert "B1" not in response.get_json()["message"]
