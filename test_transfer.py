import base64
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import b64, bearer
from sealsend.client import generate_identity
from sealsend.core.errors import ValidationFailed
from sealsend.crypto import box
from sealsend.main import create_app
from sealsend.services.transfer import UploadMetadata


def _upload(client, token, recipient, content=b"ciphertext", file_name="a.txt", **meta):
    metadata = {
        "recipient": recipient,
        "file_name": file_name,
        "encrypted_ephemeral_key": b64(b"k" * 32),
    }
    metadata.update(meta)
    return client.post(
        "/files",
        json={"metadata": metadata, "encrypted_content": b64(content)},
        headers=bearer(token),
    )


def test_ping(client):
    resp = client.get("/ping")
    assert resp.status_code == 200
    assert resp.text == "pong"


def test_app_title_from_settings(settings, storage):
    settings.app_name = "Drop"
    assert create_app(settings, storage=storage).title == "Drop"


def test_register_and_lookup(client, register):
    alice = register("alice")
    register("bob")

    resp = client.get("/users", params={"username": "alice"})
    assert resp.status_code == 200
    body = resp.json()
    assert base64.b64decode(body["identity_public_key"]) == alice.identity.public
    assert base64.b64decode(body["exchange_public_key"]) == alice.exchange.public

    everyone = client.get("/users").json()
    assert [u["username"] for u in everyone] == ["alice", "bob"]

    assert client.get("/users", params={"username": "carol"}).status_code == 404


def test_register_duplicate(client, register):
    register("alice")
    other = generate_identity("alice")
    resp = client.post(
        "/users",
        json={
            "username": "alice",
            "identity_public_key": b64(other.identity.public),
            "exchange_public_key": b64(other.exchange.public),
        },
    )
    assert resp.status_code == 409


@pytest.mark.parametrize(
    "payload",
    [
        {"username": "", "identity_public_key": b64(b"i" * 32), "exchange_public_key": b64(b"e" * 32)},
        {"username": "alice", "identity_public_key": "", "exchange_public_key": b64(b"e" * 32)},
        {"username": "alice", "identity_public_key": b64(b"i" * 32), "exchange_public_key": b64(b"e" * 31)},
        {"username": "al/ice", "identity_public_key": b64(b"i" * 32), "exchange_public_key": b64(b"e" * 32)},
        {"username": "alice", "identity_public_key": b64(b"i" * 32)},
    ],
)
def test_register_validation(client, storage, payload):
    assert client.post("/users", json=payload).status_code == 400
    assert storage.list_users() == []


def test_registration_token(settings, storage):
    settings.registration_token = "s3cret"
    client = TestClient(create_app(settings, storage=storage))
    me = generate_identity("alice")
    payload = {
        "username": "alice",
        "identity_public_key": b64(me.identity.public),
        "exchange_public_key": b64(me.exchange.public),
    }

    assert client.post("/users", json=payload).status_code == 403
    assert client.post("/users", json=payload, headers={"X-Registration-Token": "wrong"}).status_code == 403
    # the token is checked before the body is even parsed
    assert client.post("/users", json={"username": "alice"}).status_code == 403
    assert storage.get_user("alice") is None

    resp = client.post("/users", json=payload, headers={"X-Registration-Token": "s3cret"})
    assert resp.status_code == 201


def test_upload_assigns_server_fields(client, register, login):
    alice = register("alice")
    register("bob")
    token = login(alice)

    resp = _upload(
        client,
        token,
        "bob",
        id="client-chosen",
        sender="mallory",
        timestamp="2001-01-01T00:00:00Z",
        file_name="../../etc/report.pdf",
    )
    assert resp.status_code == 201, resp.text
    meta = resp.json()
    assert meta["id"] != "client-chosen"
    assert meta["sender"] == "alice"
    assert meta["recipient"] == "bob"
    assert meta["file_name"] == "report.pdf"
    assert base64.b64decode(meta["encrypted_ephemeral_key"]) == b"k" * 32
    ts = datetime.fromisoformat(meta["timestamp"].replace("Z", "+00:00"))
    assert ts.year >= 2024
    assert ts.tzinfo is not None and ts.utcoffset() == timezone.utc.utcoffset(None)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"recipient": ""},
        {"recipient": "bob", "content": b""},
        {"recipient": "bob", "encrypted_ephemeral_key": b64(b"short")},
        {"recipient": "bob", "file_name": ""},
    ],
)
def test_upload_validation(client, register, login, storage, kwargs):
    alice = register("alice")
    register("bob")
    token = login(alice)
    recipient = kwargs.pop("recipient")

    resp = _upload(client, token, recipient, **kwargs)
    assert resp.status_code == 400
    assert storage.list_files("bob") == []


def test_upload_unknown_recipient(client, register, login):
    token = login(register("alice"))
    assert _upload(client, token, "nobody").status_code == 404


def test_upload_requires_session(client, register):
    register("bob")
    resp = client.post(
        "/files",
        json={
            "metadata": {"recipient": "bob", "file_name": "a", "encrypted_ephemeral_key": b64(b"k" * 32)},
            "encrypted_content": b64(b"x"),
        },
    )
    assert resp.status_code == 401


def test_upload_size_limit(settings, storage, register, login, client):
    settings.max_upload_bytes = 16
    limited = TestClient(create_app(settings, storage=storage))
    alice = register("alice")
    register("bob")
    token = login(alice)

    assert _upload(limited, token, "bob", content=b"x" * 17).status_code == 400
    assert _upload(limited, token, "bob", content=b"x" * 16).status_code == 201


def test_list_is_scoped_to_caller(client, register, login):
    alice = register("alice")
    bob = register("bob")
    carol = register("carol")
    alice_token = login(alice)

    _upload(client, alice_token, "bob", file_name="for-bob")
    _upload(client, alice_token, "carol", file_name="for-carol")

    bob_files = client.get("/files", headers=bearer(login(bob))).json()
    assert [f["file_name"] for f in bob_files] == ["for-bob"]

    # a recipient query parameter is ignored
    carol_files = client.get("/files", params={"recipient": "bob"}, headers=bearer(login(carol))).json()
    assert [f["file_name"] for f in carol_files] == ["for-carol"]

    assert client.get("/files", headers=bearer(alice_token)).json() == []


def test_download(client, register, login):
    alice = register("alice")
    bob = register("bob")
    file_id = _upload(client, login(alice), "bob", content=b"\x00opaque\xff").json()["id"]

    bob_token = login(bob)
    resp = client.get("/files/download", params={"id": file_id}, headers=bearer(bob_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["metadata"]["id"] == file_id
    assert base64.b64decode(body["encrypted_content"]) == b"\x00opaque\xff"

    # no auto-delete: still there
    assert client.get("/files/download", params={"id": file_id}, headers=bearer(bob_token)).status_code == 200


def test_download_missing(client, register, login):
    token = login(register("alice"))
    assert client.get("/files/download", params={"id": "nope"}, headers=bearer(token)).status_code == 404


def test_download_by_outsider_forbidden(client, register, login):
    alice = register("alice")
    register("bob")
    mallory = register("mallory")
    file_id = _upload(client, login(alice), "bob").json()["id"]

    resp = client.get("/files/download", params={"id": file_id}, headers=bearer(login(mallory)))
    assert resp.status_code == 403


def test_auto_delete_after_download(client, register, login, storage):
    alice = register("alice")
    bob = register("bob")
    file_id = _upload(client, login(alice), "bob", auto_delete=True).json()["id"]

    bob_token = login(bob)
    first = client.get("/files/download", params={"id": file_id}, headers=bearer(bob_token))
    assert first.status_code == 200
    assert base64.b64decode(first.json()["encrypted_content"]) == b"ciphertext"

    assert storage.get_file_metadata(file_id) is None
    assert client.get("/files/download", params={"id": file_id}, headers=bearer(bob_token)).status_code == 404
    assert client.get("/files", headers=bearer(bob_token)).json() == []


def test_auto_delete_skipped_when_response_fails(app, register, login, storage, monkeypatch):
    alice = register("alice")
    bob = register("bob")
    client = TestClient(app, raise_server_exceptions=False)
    file_id = _upload(client, login(alice), "bob", auto_delete=True).json()["id"]

    import sealsend.api.routes.files as files_routes

    def broken(*args, **kwargs):
        raise RuntimeError("encoding failed")

    monkeypatch.setattr(files_routes, "DownloadOut", broken)
    resp = client.get("/files/download", params={"id": file_id}, headers=bearer(login(bob)))
    assert resp.status_code == 500
    assert storage.get_file_metadata(file_id) is not None
    assert storage.get_file_content(file_id) == b"ciphertext"


def test_delete_by_sender_and_recipient(client, register, login, storage):
    alice = register("alice")
    bob = register("bob")
    alice_token = login(alice)
    first = _upload(client, alice_token, "bob").json()["id"]
    second = _upload(client, alice_token, "bob").json()["id"]

    assert client.delete("/files", params={"id": first}, headers=bearer(alice_token)).status_code == 200
    assert client.delete("/files", params={"id": second}, headers=bearer(login(bob))).status_code == 200
    assert storage.list_files("bob") == []
    assert client.delete("/files", params={"id": first}, headers=bearer(alice_token)).status_code == 404


def test_delete_by_third_party_forbidden(client, register, login):
    alice = register("alice")
    bob = register("bob")
    mallory = register("mallory")
    file_id = _upload(client, login(alice), "bob").json()["id"]

    resp = client.delete("/files", params={"id": file_id}, headers=bearer(login(mallory)))
    assert resp.status_code == 403

    bob_token = login(bob)
    assert [f["id"] for f in client.get("/files", headers=bearer(bob_token)).json()] == [file_id]
    assert client.get("/files/download", params={"id": file_id}, headers=bearer(bob_token)).status_code == 200


def test_concurrent_uploads(app, register):
    register("alice")
    bob = register("bob")
    transfer = app.state.transfer
    payloads = {i: box.seal_for_recipient(f"file {i}".encode() * 100, bob.exchange.public) for i in range(20)}

    def send(i):
        eph, ct = payloads[i]
        record = transfer.upload("alice", UploadMetadata("bob", f"f{i}.txt", eph), ct)
        return i, record.id

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(send, payloads))

    ids = [file_id for _, file_id in results]
    assert len(set(ids)) == len(ids) == 20
    assert len(transfer.list_files("bob")) == 20

    for i, file_id in results:
        download = transfer.download("bob", file_id)
        eph = download.record.encrypted_ephemeral_key
        assert box.open_from_sender(download.content, eph, bob.exchange.private) == f"file {i}".encode() * 100


def test_service_rejects_empty_content(app, register):
    register("bob")
    with pytest.raises(ValidationFailed):
        app.state.transfer.upload("alice", UploadMetadata("bob", "a", b"k" * 32), b"")


@pytest.mark.parametrize("point", [bytes(32), b"\x01" + bytes(31)])
def test_register_rejects_low_order_exchange_key(client, storage, point):
    me = generate_identity("evil")
    resp = client.post(
        "/users",
        json={
            "username": "evil",
            "identity_public_key": b64(me.identity.public),
            "exchange_public_key": b64(point),
        },
    )
    assert resp.status_code == 400
    assert storage.get_user("evil") is None
