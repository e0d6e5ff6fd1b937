"""API tests with TestClient: health, auth, media upload/replace/delete, sha1 field, filter and actions."""

import hashlib
import uuid

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.media.storage import resolve_media_path

HELLO_SHA1 = "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d"
WORLD_SHA1 = "7c211433f02071597741e6ff5a8ea34789abbf43"


@pytest.fixture
def client():
    """TestClient for the FastAPI app. Use as context manager so lifespan runs (init_db, admin, backfill)."""
    with TestClient(app) as c:
        yield c


def _login(client: TestClient, email: str, password: str) -> dict:
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def admin_headers(client: TestClient) -> dict:
    return _login(client, "test@example.com", "testpass123")


@pytest.fixture
def editor_headers(client: TestClient, admin_headers: dict) -> dict:
    """A fresh non-admin account."""
    email = f"editor-{uuid.uuid4().hex[:8]}@example.com"
    r = client.post(
        "/api/users",
        json={"email": email, "display_name": "Editor", "password": "editorpass1"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    assert r.json()["is_admin"] is False
    return _login(client, email, "editorpass1")


def _upload(client: TestClient, headers: dict, body: bytes, filename: str = "file.txt") -> dict:
    r = client.post("/api/media", params={"filename": filename}, content=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_login_invalid_password(client: TestClient) -> None:
    r = client.post("/api/auth/login", json={"email": "test@example.com", "password": "wrong"})
    assert r.status_code == 401


def test_me_and_refresh(client: TestClient) -> None:
    """Access token resolves the user; refresh token yields a new pair but is not an access token."""
    r = client.post("/api/auth/login", json={"email": "test@example.com", "password": "testpass123"})
    tokens = r.json()
    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "test@example.com"
    assert me.json()["is_admin"] is True
    as_access = client.get("/api/users/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert as_access.status_code == 401
    r = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"


def test_upload_replace_and_filter_by_sha1(client: TestClient, admin_headers: dict) -> None:
    """hello -> world end to end: sha1 field follows content, filter matches only the current hash."""
    created = _upload(client, admin_headers, b"hello", "greeting.txt")
    media_id = created["id"]
    assert created["sha1"] == HELLO_SHA1
    assert created["mime_type"] == "text/plain"
    assert created["size"] == 5

    r = client.get(f"/api/media/{media_id}")
    assert r.status_code == 200
    assert r.json()["sha1"] == HELLO_SHA1
    r = client.get("/api/media", params={"sha1": HELLO_SHA1})
    assert [m["id"] for m in r.json()] == [media_id]
    assert r.headers["X-Total-Count"] == "1"

    r = client.put(f"/api/media/{media_id}/file", content=b"world", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["sha1"] == WORLD_SHA1

    assert client.get("/api/media", params={"sha1": HELLO_SHA1}).json() == []
    r = client.get("/api/media", params={"sha1": WORLD_SHA1})
    assert [m["id"] for m in r.json()] == [media_id]
    r = client.get("/api/media", params={"sha1": WORLD_SHA1.upper()})
    assert [m["id"] for m in r.json()] == [media_id]
    assert client.get("/api/media", params={"sha1": WORLD_SHA1[:8]}).json() == []

    r = client.get(f"/api/media/{media_id}/file")
    assert r.status_code == 200
    assert r.content == b"world"


def test_list_pagination_and_sha1_field(client: TestClient, admin_headers: dict) -> None:
    first = _upload(client, admin_headers, uuid.uuid4().bytes)
    second = _upload(client, admin_headers, uuid.uuid4().bytes)
    r = client.get("/api/media", params={"per_page": 1})
    assert r.status_code == 200
    assert [m["id"] for m in r.json()] == [second["id"]]
    assert int(r.headers["X-Total-Count"]) >= 2
    r = client.get("/api/media", params={"per_page": 1, "page": 2})
    assert [m["id"] for m in r.json()] == [first["id"]]
    assert all(len(m["sha1"]) == 40 for m in r.json())
    assert client.get("/api/media", params={"per_page": 101}).status_code == 422


def test_upload_requires_auth(client: TestClient) -> None:
    r = client.post("/api/media", params={"filename": "a.txt"}, content=b"x")
    assert r.status_code == 401


def test_upload_rejects_bad_filename(client: TestClient, admin_headers: dict) -> None:
    r = client.post("/api/media", content=b"x", headers=admin_headers)
    assert r.status_code == 400
    r = client.post("/api/media", params={"filename": "../etc/passwd"}, content=b"x", headers=admin_headers)
    assert r.status_code == 400


def test_upload_too_large(client: TestClient, admin_headers: dict, monkeypatch) -> None:
    monkeypatch.setenv("MEDIAHASH_MAX_UPLOAD_BYTES", "4")
    r = client.post("/api/media", params={"filename": "big.bin"}, content=b"12345", headers=admin_headers)
    assert r.status_code == 413


def test_unknown_media_is_404(client: TestClient, admin_headers: dict) -> None:
    assert client.get("/api/media/999999").status_code == 404
    assert client.get("/api/media/999999/file").status_code == 404
    assert client.put("/api/media/999999/file", content=b"x", headers=admin_headers).status_code == 404
    assert client.delete("/api/media/999999", headers=admin_headers).status_code == 404
    r = client.post("/api/media/999999/sha1/recalculate", headers=admin_headers)
    assert r.status_code == 404


def test_recalculate(client: TestClient, editor_headers: dict) -> None:
    """Recalculate picks up bytes changed on disk; a missing file keeps the last digest."""
    body, changed = uuid.uuid4().bytes, uuid.uuid4().bytes
    media = _upload(client, editor_headers, body, "data.bin")
    target = resolve_media_path(media["attached_file"])
    assert target.read_bytes() == body

    assert client.post(f"/api/media/{media['id']}/sha1/recalculate").status_code == 401

    # Bytes changed behind the service's back: sha1 stays stale until recalculated
    target.write_bytes(changed)
    assert client.get(f"/api/media/{media['id']}").json()["sha1"] == hashlib.sha1(body).hexdigest()
    r = client.post(f"/api/media/{media['id']}/sha1/recalculate", headers=editor_headers)
    assert r.status_code == 200
    assert r.json() == {"id": media["id"], "sha1": hashlib.sha1(changed).hexdigest(), "status": "computed"}

    target.unlink()
    r = client.post(f"/api/media/{media['id']}/sha1/recalculate", headers=editor_headers)
    assert r.status_code == 200
    assert r.json()["sha1"] == hashlib.sha1(changed).hexdigest()
    assert r.json()["status"] == "not_accessible"


def test_delete_removes_record_and_hash(client: TestClient, editor_headers: dict) -> None:
    body = uuid.uuid4().bytes
    media = _upload(client, editor_headers, body)
    sha1 = media["sha1"]
    r = client.delete(f"/api/media/{media['id']}", headers=editor_headers)
    assert r.status_code == 200
    assert r.json() == {"id": media["id"], "deleted": True}
    assert client.get(f"/api/media/{media['id']}").status_code == 404
    assert client.get("/api/media", params={"sha1": sha1}).json() == []


def test_backfill_admin_only(client: TestClient, admin_headers: dict, editor_headers: dict) -> None:
    assert client.post("/api/media/sha1/backfill", headers=editor_headers).status_code == 403
    r = client.post("/api/media/sha1/backfill", headers=admin_headers)
    assert r.status_code == 200
    data = r.json()
    assert data["force"] is False
    assert data["total"] == data["computed"] + data["cached"] + data["not_accessible"]
    r = client.post("/api/media/sha1/backfill", params={"force": "true"}, headers=admin_headers)
    assert r.json()["force"] is True
    assert r.json()["cached"] == 0


def test_admin_create_user_duplicate(client: TestClient, admin_headers: dict) -> None:
    payload = {"email": "test@example.com", "display_name": "Dup", "password": "whatever1"}
    r = client.post("/api/users", json=payload, headers=admin_headers)
    assert r.status_code == 400
    r = client.get("/api/users", headers=admin_headers)
    assert r.status_code == 200
    assert "test@example.com" in [u["email"] for u in r.json()]


def test_blank_sha1_filter_lists_everything(client: TestClient, admin_headers: dict) -> None:
    """An empty sha1 parameter is ignored rather than matching nothing."""
    media = _upload(client, admin_headers, uuid.uuid4().bytes)
    for value in ("", "   "):
        r = client.get("/api/media", params={"sha1": value})
        assert r.status_code == 200
        assert media["id"] in [m["id"] for m in r.json()]
        assert int(r.headers["X-Total-Count"]) >= 1
