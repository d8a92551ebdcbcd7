from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pocket_pilot.api.routes.relay import router as relay_router
from pocket_pilot.human_auth.relay_store import HumanAuthRelayStore, clamp_relay_timeout, hash_token


class MutableNow:
    def __init__(self):
        self.value = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.value


@pytest.fixture()
def now():
    return MutableNow()


@pytest.fixture()
def store(tmp_path, now):
    return HumanAuthRelayStore(tmp_path / "relay" / "requests.json", now=now)


@pytest.fixture()
def client(settings, store):
    settings.HUMAN_AUTH_API_KEY = "relay-secret"
    settings.HUMAN_AUTH_PUBLIC_BASE_URL = "https://pilot.example"
    app = FastAPI()
    app.state.settings = settings
    app.state.relay_store = store
    app.include_router(relay_router)
    return TestClient(app)


AUTH = {"Authorization": "Bearer relay-secret"}


def create(client, **body):
    payload = {"request_id": "auth-1", "task": "log in", "capability": "2fa", "instruction": "Read the code"}
    payload.update(body)
    response = client.post("/v1/human-auth/requests", json=payload, headers=AUTH)
    assert response.status_code == 200
    return response.json()


def open_token(created):
    return created["open_url"].split("token=", 1)[1]


def test_create_requires_bearer(client):
    response = client.post("/v1/human-auth/requests", json={"task": "x"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized."}

    response = client.post("/v1/human-auth/requests", json={"task": "x"}, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_create_returns_open_url_and_poll_token(client, store):
    created = create(client)

    assert created["request_id"] == "auth-1"
    assert created["open_url"].startswith("https://pilot.example/human-auth/auth-1?token=")
    assert created["poll_token"]
    # only hashes are stored
    record = store.get("auth-1")
    assert record.poll_token_hash == hash_token(created["poll_token"])
    assert created["poll_token"] not in store.state_file.read_text(encoding="utf-8")


def test_public_base_url_from_body_wins(client):
    created = create(client, public_base_url="https://tunnel.example/")
    assert created["open_url"].startswith("https://tunnel.example/human-auth/auth-1?token=")


def test_poll_requires_poll_token(client):
    created = create(client)

    assert client.get("/v1/human-auth/requests/auth-1", params={"pollToken": "wrong"}).status_code == 403
    assert client.get("/v1/human-auth/requests/missing", params={"pollToken": "x"}).status_code == 404

    polled = client.get("/v1/human-auth/requests/auth-1", params={"pollToken": created["poll_token"]})
    assert polled.status_code == 200
    assert polled.json()["status"] == "pending"


def test_resolve_consumes_open_token_once(client):
    created = create(client)
    token = open_token(created)

    resolved = client.post(
        "/v1/human-auth/requests/auth-1/resolve",
        json={"token": token, "approved": True, "note": "code below", "artifact": {"kind": "text", "text": "493021"}},
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "approved"

    replay = client.post("/v1/human-auth/requests/auth-1/resolve", json={"token": token, "approved": False})
    assert replay.status_code == 409

    polled = client.get("/v1/human-auth/requests/auth-1", params={"pollToken": created["poll_token"]}).json()
    assert polled["status"] == "approved"
    assert polled["note"] == "code below"
    assert polled["artifact"]["text"] == "493021"


def test_resolve_with_wrong_token(client):
    create(client)
    response = client.post("/v1/human-auth/requests/auth-1/resolve", json={"token": "guess", "approved": True})
    assert response.status_code == 403
    assert "error" in response.json()


def test_expired_request_turns_timeout(client, now):
    created = create(client, timeout_sec=30)
    now.value += timedelta(seconds=31)

    polled = client.get("/v1/human-auth/requests/auth-1", params={"pollToken": created["poll_token"]}).json()
    assert polled["status"] == "timeout"

    response = client.post("/v1/human-auth/requests/auth-1/resolve", json={"token": open_token(created), "approved": True})
    assert response.status_code == 409


def test_portal_page_renders_escaped(client):
    created = create(client, task="<script>alert(1)</script>")

    page = client.get("/human-auth/auth-1", params={"token": open_token(created)})
    assert page.status_code == 200
    assert "text/html" in page.headers["content-type"]
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page.text
    assert "/v1/human-auth/requests/" in page.text

    assert client.get("/human-auth/auth-1", params={"token": "bad"}).status_code == 403


def test_state_survives_restart(client, tmp_path, now):
    create(client)
    reloaded = HumanAuthRelayStore(tmp_path / "relay" / "requests.json", now=now)
    assert len(reloaded) == 1
    assert reloaded.get("auth-1").status == "pending"


def test_healthz(client):
    create(client)
    assert client.get("/healthz").json() == {"ok": True, "requests": 1}


def test_clamp_relay_timeout():
    assert clamp_relay_timeout(5) == 30
    assert clamp_relay_timeout(99999) == 1800
    assert clamp_relay_timeout(float("nan")) == 300


def test_existing_request_id_cannot_be_recreated(client):
    created = create(client)
    client.post("/v1/human-auth/requests/auth-1/resolve", json={"token": open_token(created), "approved": False})

    again = client.post("/v1/human-auth/requests", json={"request_id": "auth-1", "task": "log in"}, headers=AUTH)
    assert again.status_code == 409
    assert "error" in again.json()

    polled = client.get("/v1/human-auth/requests/auth-1", params={"pollToken": created["poll_token"]}).json()
    assert polled["status"] == "rejected"
