"""HTTP surface tests with FastAPI's TestClient over the in-memory store."""

import uuid

import pytest
from fastapi import Header
from fastapi.testclient import TestClient

from noteneo.main import create_app
from noteneo.routers.auth import User, get_current_user
from noteneo.services import build_services
from noteneo.settings import settings

PNG = b"\x89PNG\r\n\x1a\n lecture 4 whiteboard"


def header_user(x_user: str = Header(...)) -> User:
    return User(username=x_user)


@pytest.fixture
def client(memory_store, caps, files):
    services = build_services(settings, store=memory_store, capabilities=caps, files=files)
    app = create_app(services)
    app.dependency_overrides[get_current_user] = header_user
    return TestClient(app)


def upload(client, user, path="/notes", data=PNG, mime="image/png", title="Lecture 4", **form):
    fields = {"title": title, "subject": "Linear algebra", **form}
    return client.post(
        path,
        files={"file": ("lecture4.png", data, mime)},
        data=fields,
        headers={"X-User": user},
    )


def test_health_and_info(client):
    assert client.get("/health").json() == {"status": "ok"}
    info = client.get("/info").json()
    assert info["status"] == "ok"
    assert info["gemini_configured"] is False


def test_verify_reports_decision_without_persisting(client, caps):
    resp = upload(client, "u1", path="/notes/verify", tags="algebra, Algebra")
    assert resp.status_code == 200
    body = resp.json()
    assert body["outcome"] == "admitted"
    assert body["stage"] == "admitted"
    assert body["quality_score"] == 7
    assert body["suggested_tags"] == ["calculus", "limits"]
    assert body["retryable"] is False
    assert client.get("/notes").json() == []


def test_verify_reports_policy_rejection(client, caps):
    caps.educational = False
    body = upload(client, "u1", path="/notes/verify").json()
    assert body["outcome"] == "rejected"
    assert body["stage"] == "policy_audit"
    assert body["suggested_tags"] == []


def test_publish_credits_uploader(client, caps, files):
    caps.score = 9
    resp = upload(client, "u1", tags="Matrices,matrices,eigen", contributors="u2")
    assert resp.status_code == 201
    note = resp.json()
    assert note["status"] == "original"
    assert note["serial_code"].startswith("NN-")
    assert note["tags"] == ["eigen", "matrices"]
    assert note["contributor_ids"] == ["u1", "u2"]
    assert note["quality"]["score"] == 9
    assert note["summary"]["text"]
    assert note["file_url"].startswith("/files/notes/u1/")
    assert len(files.saved) == 1

    profile = client.get("/profiles/u1").json()
    assert profile["points"] == 30
    assert profile["level"] == 1 and profile["badges"] == ["Novice"]
    assert client.get("/profiles/u2").json()["points"] == 5
    ledger = client.get("/profiles/u1/ledger").json()
    assert [(r["delta"], r["reason"]) for r in ledger] == [(30, "publish")]

    assert [n["id"] for n in client.get("/notes").json()] == [note["id"]]
    assert client.get(f"/notes/{note['id']}").json()["id"] == note["id"]
    assert [n["id"] for n in client.get("/notes/by-user/u2").json()] == [note["id"]]


def test_publish_policy_rejection_is_422(client, caps, files):
    caps.educational = False
    resp = upload(client, "u1")
    assert resp.status_code == 422
    assert resp.json()["detail"]["retryable"] is False
    assert files.saved == {}
    assert client.get("/profiles/u1").json()["points"] == 0


def test_publish_blocked_is_503_and_retryable(client, caps):
    caps.fail = "quality"
    resp = upload(client, "u1")
    assert resp.status_code == 503
    assert resp.json()["detail"]["retryable"] is True
    assert client.get("/notes").json() == []


def test_publish_duplicate_is_409_with_reference(client):
    first = upload(client, "u1").json()
    resp = upload(client, "u2")
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["duplicate_of"]["id"] == first["id"]
    assert detail["duplicate_of"]["serial_code"] == first["serial_code"]


def test_publish_requires_title(client):
    resp = upload(client, "u1", title="   ")
    assert resp.status_code == 400


def test_publish_rejects_empty_file(client):
    resp = upload(client, "u1", data=b"")
    assert resp.status_code == 400


def test_claim_flow(client):
    note = upload(client, "u1").json()

    self_claim = client.post(f"/notes/{note['id']}/claim", headers={"X-User": "u1"})
    assert self_claim.status_code == 200
    assert self_claim.json() == {"ok": False, "reason": "self_claim", "entry_id": note["id"]}

    claim = client.post(f"/notes/{note['id']}/claim", headers={"X-User": "u3"})
    assert claim.json()["ok"] is True
    assert client.get("/profiles/u1").json()["points"] == 10 - 50
    assert client.get("/notes").json() == []
    assert client.get(f"/notes/{note['id']}").json()["status"] == "infringing"

    again = client.post(f"/notes/{note['id']}/claim", headers={"X-User": "u4"})
    assert again.json()["reason"] == "already_infringing"
    assert client.get("/profiles/u1").json()["points"] == -40

    # The rightful owner can now publish the same content
    assert upload(client, "u2").status_code == 201


def test_claim_unknown_note_is_404(client):
    assert client.post("/notes/missing/claim", headers={"X-User": "u1"}).status_code == 404


def test_bookmarks_and_follows(client):
    note = upload(client, "u1").json()
    client.get("/profiles/u1")
    assert client.post(f"/notes/{note['id']}/bookmark", headers={"X-User": "u2"}).status_code == 204
    assert client.get("/profiles/me/bookmarks", headers={"X-User": "u2"}).json() == [note["id"]]
    assert client.delete(f"/notes/{note['id']}/bookmark", headers={"X-User": "u2"}).status_code == 204
    assert client.get("/profiles/me/bookmarks", headers={"X-User": "u2"}).json() == []
    assert client.post("/notes/missing/bookmark", headers={"X-User": "u2"}).status_code == 404

    assert client.post("/profiles/u1/follow", headers={"X-User": "u2"}).json()["changed"] is True
    assert client.get("/profiles/me/following", headers={"X-User": "u2"}).json() == ["u1"]
    assert client.get("/profiles/u1").json()["followers_count"] == 1
    assert client.post("/profiles/u1/follow", headers={"X-User": "u1"}).status_code == 400
    assert client.post("/profiles/nobody/follow", headers={"X-User": "u2"}).status_code == 404
    assert client.delete("/profiles/u1/follow", headers={"X-User": "u2"}).json()["changed"] is True


def test_unknown_profile_is_404(client):
    assert client.get("/profiles/ghost").status_code == 404


class TestAuth:
    @pytest.fixture
    def auth_client(self, memory_store, caps, files):
        from noteneo.db import Base, engine

        Base.metadata.create_all(bind=engine)
        services = build_services(settings, store=memory_store, capabilities=caps, files=files)
        return TestClient(create_app(services))

    def test_register_login_and_me(self, auth_client, memory_store):
        username = f"ada-{uuid.uuid4().hex[:8]}"
        resp = auth_client.post(
            "/auth/register",
            json={"username": username, "password": "s3cret-pass", "email": "ada@example.edu", "display_name": "Ada"},
        )
        assert resp.status_code == 201
        assert resp.json()["profile"]["display_name"] == "Ada"

        dup = auth_client.post(
            "/auth/register",
            json={"username": username, "password": "x", "email": "ada@example.edu"},
        )
        assert dup.status_code == 409

        bad = auth_client.post("/auth/token", data={"username": username, "password": "wrong"})
        assert bad.status_code == 401

        token = auth_client.post("/auth/token", data={"username": username, "password": "s3cret-pass"}).json()
        me = auth_client.get("/auth/me", headers={"Authorization": f"Bearer {token['access_token']}"})
        assert me.json() == {"username": username}

    def test_protected_routes_require_token(self, auth_client):
        resp = auth_client.post("/notes/abc/claim")
        assert resp.status_code == 401
        assert auth_client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_oversized_upload_is_413(client, monkeypatch, files):
    monkeypatch.setattr(settings, "max_upload_bytes", 16)

    assert upload(client, "u1", data=b"x" * 16).status_code == 201
    resp = upload(client, "u2", data=b"y" * 17)

    assert resp.status_code == 413
    assert len(files.saved) == 1
