from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from sealsend.client import generate_identity
from sealsend.core.config import Settings
from sealsend.crypto.signatures import sign_ed25519_raw
from sealsend.main import create_app
from sealsend.storage.authority import StorageAuthority


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'sealsend.db'}",
        storage_type="local",
        storage_dir=str(tmp_path / "blobs"),
        registration_token="",
        log_level="DEBUG",
    )


@pytest.fixture
def storage(settings):
    s = StorageAuthority.from_settings(settings)
    yield s
    s.close()


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage=storage)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register(client):
    """Register a fresh identity over HTTP and return its local key material."""

    def _register(username: str):
        me = generate_identity(username)
        resp = client.post(
            "/users",
            json={
                "username": username,
                "identity_public_key": b64(me.identity.public),
                "exchange_public_key": b64(me.exchange.public),
            },
        )
        assert resp.status_code == 201, resp.text
        return me

    return _register


@pytest.fixture
def login(client):
    """Run the challenge-response flow and return the session token."""

    def _login(me) -> str:
        resp = client.get("/auth/challenge", params={"username": me.username})
        assert resp.status_code == 200, resp.text
        nonce = resp.json()["nonce"]
        sig = sign_ed25519_raw(me.identity.private, nonce.encode("utf-8"))
        resp = client.post(
            "/auth/login",
            json={"username": me.username, "nonce": nonce, "signature": b64(sig)},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["token"]

    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
