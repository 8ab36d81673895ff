"""
HTTP surface tests.

The application is built around an injected coordinator so no
environment configuration is read.
"""

import pytest
from fastapi.testclient import TestClient

from sigillum.app.main import create_app
from sigillum.tests.fixtures.pdf_factory import blank_pdf, text_pdf
from sigillum.tests.helpers import ADMIN_TOKEN, InMemoryObjectStore, make_harness


AUTH = {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def harness(tmp_path):
    h = make_harness(tmp_path)
    yield h
    h.coordinator.close()


@pytest.fixture
def client(harness):
    with TestClient(create_app(harness.coordinator)) as client:
        yield client


def _upload(client, data=None, filename="contract.pdf", content_type="application/pdf", **form):
    data = blank_pdf(1) if data is None else data
    return client.post(
        "/documents/upload",
        files={"file": (filename, data, content_type)},
        data=form,
        headers=AUTH,
    )


def _assert_error(response, status_code, kind):
    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["error"] == kind
    assert body["detail"]


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_upload_registers_document(client, harness):
    response = _upload(client, text_pdf(2))

    assert response.status_code == 201
    body = response.json()
    assert set(body) == {"doc_code", "verify_url", "file_path", "file_hash"}
    assert body["verify_url"] == f"https://host/v/{body['doc_code']}"
    assert harness.storage.exists(body["file_path"])


def test_upload_honours_form_options(client, harness):
    response = _upload(client, qr_size="small", qr_position="top-center")

    assert response.status_code == 201
    assert harness.events.events[1].details["qr_size"] == "small"
    assert harness.events.events[1].details["qr_position"] == "top-center"


def test_upload_rejects_unknown_option(client):
    _assert_error(_upload(client, qr_size="huge"), 400, "validation_error")


def test_upload_requires_admin(client):
    response = client.post(
        "/documents/upload",
        files={"file": ("a.pdf", blank_pdf(1), "application/pdf")},
    )
    _assert_error(response, 401, "unauthorized")

    response = client.post(
        "/documents/upload",
        files={"file": ("a.pdf", blank_pdf(1), "application/pdf")},
        headers={"Authorization": "Bearer wrong"},
    )
    _assert_error(response, 401, "unauthorized")


def test_upload_rejects_non_pdf(client):
    response = _upload(client, b"plain text", filename="notes.txt", content_type="text/plain")

    _assert_error(response, 415, "unsupported_media_type")


def test_upload_missing_file(client):
    response = client.post("/documents/upload", data={}, headers=AUTH)

    _assert_error(response, 400, "validation_error")
    assert "file" in response.json()["detail"]


def test_upload_too_large(tmp_path):
    h = make_harness(tmp_path, max_upload_size_mb=1)
    try:
        with TestClient(create_app(h.coordinator)) as client:
            response = _upload(client, b"%PDF" + b"\0" * (1024 * 1024))
        _assert_error(response, 413, "payload_too_large")
    finally:
        h.coordinator.close()


def test_upload_invalid_pdf(client):
    _assert_error(_upload(client, b"%PDF-1.7 garbage"), 400, "invalid_input_document")


def test_upload_url_direct_mode(client):
    response = client.get("/documents/upload-url", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"mode": "direct"}


def test_process_in_direct_mode_finds_nothing(client):
    response = client.post(
        "/documents/process",
        json={"doc_code": "ABCDEF2G3H4J"},
        headers=AUTH,
    )

    _assert_error(response, 404, "not_found")


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def test_resolve_serves_certified_pdf(client, harness):
    doc = _upload(client).json()

    response = client.get(f"/documents/resolve/{doc['doc_code']}")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == (
        f'inline; filename="{doc["doc_code"]}.pdf"'
    )
    assert response.headers["x-document-revoked"] == "false"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.content == harness.storage.read(doc["file_path"])


def test_resolve_unknown_code(client):
    _assert_error(client.get("/documents/resolve/UNKNOWNCODE2"), 404, "not_found")


def test_resolve_missing_file_is_server_error(client, harness):
    doc = _upload(client).json()
    (harness.coordinator.settings.storage_root / doc["file_path"]).unlink()

    response = client.get(f"/documents/resolve/{doc['doc_code']}")

    _assert_error(response, 500, "data_integrity_error")
    assert str(harness.coordinator.settings.storage_root) not in response.text


def test_resolve_presigned_redirects(tmp_path):
    h = make_harness(tmp_path, storage=InMemoryObjectStore())
    try:
        with TestClient(create_app(h.coordinator)) as client:
            ticket = client.get("/documents/upload-url", headers=AUTH).json()
            assert ticket["mode"] == "presigned"
            h.storage.save(blank_pdf(1), ticket["temp_key"])

            processed = client.post(
                "/documents/process",
                json={"doc_code": ticket["doc_code"], "qr_size": "large"},
                headers=AUTH,
            )
            assert processed.status_code == 201

            response = client.get(
                f"/documents/resolve/{ticket['doc_code']}",
                follow_redirects=False,
            )

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://objects.test/documents/")
        assert response.headers["x-document-revoked"] == "false"
    finally:
        h.coordinator.close()


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def test_verify_file(client, harness):
    raw = text_pdf(2)
    doc = _upload(client, raw).json()
    certified = harness.storage.read(doc["file_path"])

    match = client.post(
        "/documents/verify-file",
        files={"file": ("copy.pdf", certified, "application/pdf")},
        data={"doc_code": doc["doc_code"]},
    )
    mismatch = client.post(
        "/documents/verify-file",
        files={"file": ("original.pdf", raw, "application/pdf")},
        data={"doc_code": f"  {doc['doc_code']} "},
    )

    assert match.status_code == 200
    assert match.json()["match"] is True
    assert match.json()["stored_hash"] == doc["file_hash"]
    assert mismatch.status_code == 200
    assert mismatch.json()["match"] is False


def test_verify_unknown_code(client):
    response = client.post(
        "/documents/verify-file",
        files={"file": ("a.pdf", b"%PDF", "application/pdf")},
        data={"doc_code": "UNKNOWNCODE2"},
    )

    _assert_error(response, 404, "not_registered")


def test_verify_requires_doc_code(client):
    response = client.post(
        "/documents/verify-file",
        files={"file": ("a.pdf", b"%PDF", "application/pdf")},
    )

    _assert_error(response, 400, "validation_error")


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

def test_admin_list_and_revoke(client):
    first = _upload(client).json()
    second = _upload(client).json()

    listed = client.get("/admin/documents", headers=AUTH)
    assert listed.status_code == 200
    assert listed.json()["success"] is True
    codes = [d["doc_code"] for d in listed.json()["documents"]]
    assert codes == [second["doc_code"], first["doc_code"]]

    revoked = client.post("/admin/revoke", json={"doc_code": first["doc_code"]}, headers=AUTH)
    assert revoked.status_code == 200
    assert revoked.json() == {"doc_code": first["doc_code"], "revoked": True}

    again = client.post("/admin/revoke", json={"doc_code": first["doc_code"]}, headers=AUTH)
    _assert_error(again, 409, "already_revoked")

    resolved = client.get(f"/documents/resolve/{first['doc_code']}")
    assert resolved.status_code == 200
    assert resolved.headers["x-document-revoked"] == "true"


def test_admin_revoke_unknown(client):
    response = client.post("/admin/revoke", json={"doc_code": "UNKNOWNCODE2"}, headers=AUTH)

    _assert_error(response, 404, "not_found")


def test_admin_requires_token(client):
    _assert_error(client.get("/admin/documents"), 401, "unauthorized")


def test_admin_closed_when_no_token_configured(tmp_path):
    h = make_harness(tmp_path, admin_token=None)
    try:
        with TestClient(create_app(h.coordinator)) as client:
            response = client.get("/admin/documents", headers=AUTH)
        _assert_error(response, 401, "unauthorized")
    finally:
        h.coordinator.close()
