"""
Test helper functions for common testing operations
"""

from typing import Any, Dict, Optional

from fastapi.testclient import TestClient

from tests.utils.factories import SignatureFactory


def assert_response_structure(
    response_data: Dict[str, Any], expected_keys: list[str], optional_keys: Optional[list[str]] = None
):
    """Assert that response has expected structure"""
    optional_keys = optional_keys or []

    for key in expected_keys:
        assert key in response_data, f"Required key '{key}' missing from response"

    allowed_keys = set(expected_keys + optional_keys)
    unexpected_keys = set(response_data.keys()) - allowed_keys
    assert not unexpected_keys, f"Unexpected keys in response: {unexpected_keys}"


def assert_error_response(response, status_code: int, error: str):
    """Assert the service's {"error", "message"} error shape"""
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["error"] == error
    assert isinstance(body.get("message"), str)


def open_session(client: TestClient, headers: Dict[str, str]) -> str:
    """Init and open a session; returns the record id"""
    init = client.post("/api/esign/session/init", headers=headers, json={})
    assert init.status_code == 200, init.text
    record_id = init.json()["recordId"]

    opened = client.post("/api/esign/session/open", headers=headers, json={"recordId": record_id})
    assert opened.status_code == 200, opened.text
    return record_id


def upload_signature(client: TestClient, headers: Dict[str, str], record_id: str, image: Optional[bytes] = None):
    return client.post(
        "/api/esign/upload/signature",
        headers=headers,
        data={"recordId": record_id},
        files={"signature": ("signature.png", image or SignatureFactory.create(), "image/png")},
    )


def compose(client: TestClient, headers: Dict[str, str], record_id: str, **placement: Any):
    body = {"recordId": record_id, "page": 1, "xPct": 0.6, "yPct": 0.8, "widthPct": 0.25}
    body.update(placement)
    return client.post("/api/esign/compose", headers=headers, json=body)
