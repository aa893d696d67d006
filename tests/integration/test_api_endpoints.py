"""
Integration tests for the HTTP API

These drive the full signing flow through the FastAPI app with a local
storage backend and a per-test SQLite database.
"""

import json
from io import BytesIO

import httpx
import pytest
from pypdf import PdfReader

from esign.api.deps import get_notifier
from esign.main import app
from esign.services.notifier import SIGNATURE_HEADER, WebhookNotifier
from tests.utils.factories import PdfFactory, SignatureFactory, SignerFactory
from tests.utils.helpers import (
    assert_error_response,
    assert_response_structure,
    compose,
    open_session,
    upload_signature,
)

pytestmark = pytest.mark.integration


@pytest.mark.critical
class TestSigningFlow:
    def test_full_flow(self, client, signer_params, signer_headers, seeded_storage):
        authorized = client.post("/api/esign/authorize", json=signer_params)
        assert authorized.json()["ok"] is True

        init = client.post("/api/esign/session/init", headers=signer_headers, json={})
        assert init.status_code == 200
        assert_response_structure(init.json(), ["sessionId", "recordId"])
        record_id = init.json()["recordId"]

        opened = client.post("/api/esign/session/open", headers=signer_headers, json={"recordId": record_id})
        assert opened.status_code == 200
        assert opened.json() == {"ok": True, "status": "document_uploaded", "templateName": "ICA_template.pdf"}

        preview = client.get(f"/api/esign/session/pdf/{record_id}", headers=signer_headers)
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "application/pdf"
        assert preview.headers["cache-control"] == "no-store"
        assert preview.content.startswith(b"%PDF")

        uploaded = upload_signature(client, signer_headers, record_id)
        assert uploaded.status_code == 200
        assert uploaded.json() == {"ok": True, "status": "signature_uploaded"}

        signed = compose(client, signer_headers, record_id, page=2)
        assert signed.status_code == 200, signed.text
        assert_response_structure(signed.json(), ["signedRef", "signedAt"])
        signed_ref = signed.json()["signedRef"]
        assert signed_ref.startswith("signed/Jane_Doe/")

        stored = PdfReader(BytesIO(seeded_storage.download(signed_ref)))
        assert len(stored.pages) == 2
        assert len(stored.pages[1].images) == 1

        download = client.get(f"/api/esign/{record_id}/download", headers=signer_headers)
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.headers["content-disposition"] == 'attachment; filename="signed.pdf"'
        assert download.content == seeded_storage.download(signed_ref)

        status = client.get(f"/api/esign/session/{record_id}", headers=signer_headers).json()
        assert status["status"] == "signed"
        assert status["hasTemplate"] is False
        assert status["signatureReady"] is False
        assert status["signedRef"] == signed_ref

    def test_nda_uses_nda_template(self, client):
        headers = SignerFactory.create_headers(doc_type="NDA")
        init = client.post("/api/esign/session/init", headers=headers, json={})
        opened = client.post(
            "/api/esign/session/open", headers=headers, json={"recordId": init.json()["recordId"]}
        )

        assert opened.json()["templateName"] == "NDA_template.pdf"

    def test_signature_can_be_replaced_before_compose(self, client, signer_headers):
        record_id = open_session(client, signer_headers)

        assert upload_signature(client, signer_headers, record_id).status_code == 200
        second = upload_signature(client, signer_headers, record_id, SignatureFactory.create(size=(300, 80)))
        assert second.status_code == 200

        assert compose(client, signer_headers, record_id).status_code == 200


class TestWorkflowErrors:
    def test_compose_without_signature(self, client, signer_headers):
        record_id = open_session(client, signer_headers)

        response = compose(client, signer_headers, record_id)
        assert_error_response(response, 400, "BadState")
        assert response.json()["message"] == "Upload a signature first"

    def test_compose_twice(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        upload_signature(client, signer_headers, record_id)
        assert compose(client, signer_headers, record_id).status_code == 200

        assert_error_response(compose(client, signer_headers, record_id), 400, "BadState")

    def test_open_twice(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = client.post("/api/esign/session/open", headers=signer_headers, json={"recordId": record_id})

        assert_error_response(response, 409, "InvalidTransition")

    def test_signature_before_open(self, client, signer_headers):
        init = client.post("/api/esign/session/init", headers=signer_headers, json={})
        response = upload_signature(client, signer_headers, init.json()["recordId"])

        assert_error_response(response, 409, "InvalidTransition")

    def test_signature_wrong_type(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = client.post(
            "/api/esign/upload/signature",
            headers=signer_headers,
            data={"recordId": record_id},
            files={"signature": ("sig.gif", b"GIF89a....", "image/gif")},
        )

        assert_error_response(response, 415, "Unsupported")

    def test_signature_missing_file(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = client.post("/api/esign/upload/signature", headers=signer_headers, data={"recordId": record_id})

        assert_error_response(response, 400, "NoFile")

    def test_signature_undecodable(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = upload_signature(client, signer_headers, record_id, b"\x89PNG but not really")

        assert_error_response(response, 400, "BadSignature")

    def test_document_upload_after_auto_staging(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = client.post(
            "/api/esign/upload/document",
            headers=signer_headers,
            data={"recordId": record_id},
            files={"document": ("mine.pdf", PdfFactory.create(), "application/pdf")},
        )

        assert_error_response(response, 409, "InvalidTransition")

    def test_document_upload_must_be_pdf(self, client, signer_headers):
        init = client.post("/api/esign/session/init", headers=signer_headers, json={})
        response = client.post(
            "/api/esign/upload/document",
            headers=signer_headers,
            data={"recordId": init.json()["recordId"]},
            files={"document": ("notes.txt", b"hello", "text/plain")},
        )

        assert_error_response(response, 415, "Unsupported")
        assert response.json()["message"] == "Only PDF"

    def test_open_without_templates(self, client, signer_headers, seeded_storage):
        for stored in seeded_storage.list_pdfs("templates"):
            (seeded_storage.root / stored.ref).unlink()

        init = client.post("/api/esign/session/init", headers=signer_headers, json={})
        response = client.post(
            "/api/esign/session/open", headers=signer_headers, json={"recordId": init.json()["recordId"]}
        )

        assert_error_response(response, 502, "StorageError")

    @pytest.mark.parametrize(
        "placement",
        [{"xPct": 1.5}, {"yPct": -0.1}, {"widthPct": 0}, {"page": 0}],
    )
    def test_compose_placement_validation(self, client, signer_headers, placement):
        record_id = open_session(client, signer_headers)
        upload_signature(client, signer_headers, record_id)

        response = compose(client, signer_headers, record_id, **placement)
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_download_before_signing(self, client, signer_headers):
        record_id = open_session(client, signer_headers)
        response = client.get(f"/api/esign/{record_id}/download", headers=signer_headers)

        assert_error_response(response, 404, "NotFound")

    def test_unknown_record(self, client, signer_headers):
        response = client.get("/api/esign/session/424242", headers=signer_headers)
        assert_error_response(response, 404, "NotFound")


class TestWebhooks:
    def test_viewed_and_signed_events(self, client, signer_headers):
        delivered = []

        def handler(request):
            delivered.append(request)
            return httpx.Response(204)

        notifier = WebhookNotifier(
            "https://hooks.example.com/esign", signing_key="hook-key", transport=httpx.MockTransport(handler)
        )
        app.dependency_overrides[get_notifier] = lambda: notifier

        record_id = open_session(client, {**signer_headers, "x-session-id": "browser-session-1"})
        upload_signature(client, signer_headers, record_id)
        assert compose(client, signer_headers, record_id).status_code == 200

        events = [json.loads(request.content) for request in delivered]
        assert [event["event"] for event in events] == ["document.viewed", "document.signed"]
        assert events[0]["recordId"] == record_id
        assert events[0]["email"] == "jane.doe@example.com"
        assert events[0]["sessionId"] == "browser-session-1"
        assert events[1]["signedRef"].endswith("_signed.pdf")
        assert all(SIGNATURE_HEADER in request.headers for request in delivered)
        assert all("secret" not in event for event in events)

    def test_failing_receiver_does_not_break_the_flow(self, client, signer_headers):
        notifier = WebhookNotifier(
            "https://hooks.example.com/esign",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        app.dependency_overrides[get_notifier] = lambda: notifier

        record_id = open_session(client, signer_headers)
        assert client.get(f"/api/esign/session/{record_id}", headers=signer_headers).status_code == 200


class TestServiceEndpoints:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_detailed_health(self, client):
        response = client.get("/api/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] in ("healthy", "degraded")
        assert body["services"]["database"]["connected"] is True
        assert body["services"]["rate_limiting"]["storage"]["type"] == "memory"
        assert body["services"]["signature_cache"]["entries"] == 0
        assert "storage" in body["services"]

    def test_unknown_route(self, client):
        response = client.get("/api/esign/no/such/route/here")
        assert response.status_code == 404
        assert response.json() == {"error": "NotFound", "message": "Route not found"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "bad id with spaces"})
        assert response.headers["X-Request-ID"] != "bad id with spaces"
        assert len(response.headers["X-Request-ID"]) == 36

    def test_oversized_body_is_refused_early(self, client, signer_headers, test_settings):
        response = client.post(
            "/api/esign/upload/signature",
            headers={**signer_headers, "content-length": str(test_settings.MAX_UPLOAD_BYTES * 2)},
            content=b"",
        )
        assert response.status_code == 413

    def test_signing_page(self, client):
        response = client.get("/?email=jane.doe@example.com&name=Jane&secret=x&docType=ICA")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "pdf.min.js" in response.text
        assert "/static/js/esign.js" in response.text

    def test_static_assets(self, client):
        assert client.get("/static/js/esign.js").status_code == 200
        assert client.get("/static/css/esign.css").status_code == 200
