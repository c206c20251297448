"""Documents API: upload, list with signed URLs, download, delete, usage."""
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from careconnect.core.database import engine
from careconnect.models import SecurityLog

PDF = b"%PDF-1.4\n1 0 obj\n"
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def _upload(client: TestClient, headers: dict, name="lab.pdf", content=PDF, mime="application/pdf"):
    return client.post("/documents", files={"file": (name, content, mime)}, headers=headers)


def test_upload_requires_auth(client: TestClient):
    assert _upload(client, {}).status_code == 401


def test_upload_list_download_delete(client: TestClient, auth_headers: dict):
    r = _upload(client, auth_headers)
    assert r.status_code == 200, r.text
    doc = r.json()
    assert doc["file_name"] == "lab.pdf"
    assert doc["file_type"] == "application/pdf"
    assert doc["file_size"] == len(PDF)
    assert len(doc["file_hash"]) == 64
    assert doc["file_url"].startswith("/documents/files/")

    r = client.get("/documents", headers=auth_headers)
    assert r.status_code == 200
    assert [d["id"] for d in r.json()] == [doc["id"]]

    # The signed URL alone authorizes the download
    r = client.get(doc["file_url"])
    assert r.status_code == 200
    assert r.content == PDF
    assert r.headers["content-type"].startswith("application/pdf")

    r = client.delete(f"/documents/{doc['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert client.get("/documents", headers=auth_headers).json() == []
    assert client.get(doc["file_url"]).status_code == 404


def test_mismatched_content_rejected(client: TestClient, auth_headers: dict):
    r = _upload(client, auth_headers, name="x.png", content=JPEG, mime="image/png")
    assert r.status_code == 400
    assert r.json()["error"] == "File content does not match the declared file type"


def test_unsupported_type_rejected(client: TestClient, auth_headers: dict):
    r = _upload(client, auth_headers, name="notes.txt", content=b"hello", mime="text/plain")
    assert r.status_code == 415


def test_upload_quota(client: TestClient, new_user):
    headers = new_user()
    for _ in range(5):
        assert _upload(client, headers).status_code == 200
    r = _upload(client, headers)
    assert r.status_code == 429
    assert r.json()["error"].startswith("You can make up to 5 file uploads per hour.")
    usage = client.get("/documents/usage", headers=headers).json()
    assert usage["count"] == 5
    assert usage["remaining"] == 0

    user_id = client.get("/auth/me", headers=headers).json()["id"]
    with Session(engine) as db:
        rows = db.exec(
            select(SecurityLog).where(SecurityLog.user_id == user_id, SecurityLog.event == "quota_exceeded")
        ).all()
    assert [row.endpoint for row in rows] == ["/documents"]
    assert rows[0].detail.startswith("quota;")


def test_forged_download_token(client: TestClient):
    r = client.get("/documents/files/not-a-token")
    assert r.status_code == 403


def test_access_token_is_not_a_download_link(client: TestClient, auth_headers: dict):
    token = auth_headers["Authorization"].split(" ", 1)[1]
    r = client.get(f"/documents/files/{token}")
    assert r.status_code == 403


def test_cannot_delete_other_users_document(client: TestClient, new_user):
    owner, other = new_user(), new_user()
    doc = _upload(client, owner).json()
    r = client.delete(f"/documents/{doc['id']}", headers=other)
    assert r.status_code == 404
    assert len(client.get("/documents", headers=owner).json()) == 1
    assert client.get("/documents", headers=other).json() == []
