"""
Programmatic client for a SealSend server.

Holds the caller's private keys in memory, performs the challenge-response
login, and does all encryption and decryption locally: the server only ever
receives public keys, signatures and ciphertext.

``http`` may be a ``requests.Session`` or anything with the same
``get``/``post``/``delete`` surface (FastAPI's ``TestClient`` included).
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import requests

from sealsend.crypto import box
from sealsend.crypto.keys import (
    ExchangeKeyPair,
    IdentityKeyPair,
    generate_exchange_keypair,
    generate_identity_keypair,
)
from sealsend.crypto.signatures import sign_ed25519_raw

DEFAULT_SERVER_URL = "http://localhost:8082"
DEFAULT_TIMEOUT = 30


class ApiError(Exception):

    def __init__(self, status_code: int, detail):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


@dataclass
class LocalIdentity:
    """Everything a user keeps on their own machine."""
    username: str
    identity: IdentityKeyPair
    exchange: ExchangeKeyPair


@dataclass
class RemoteFile:
    id: str
    sender: str
    recipient: str
    file_name: str
    encrypted_ephemeral_key: bytes
    timestamp: datetime
    auto_delete: bool

    @classmethod
    def from_json(cls, data: dict) -> "RemoteFile":
        return cls(
            id=data["id"],
            sender=data["sender"],
            recipient=data["recipient"],
            file_name=data["file_name"],
            encrypted_ephemeral_key=_b64d(data["encrypted_ephemeral_key"]),
            timestamp=datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")),
            auto_delete=data["auto_delete"],
        )


@dataclass
class PublicIdentity:
    username: str
    identity_public_key: bytes
    exchange_public_key: bytes


def _b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64d(data: str) -> bytes:
    return base64.b64decode(data)


def generate_identity(username: str) -> LocalIdentity:
    return LocalIdentity(
        username=username,
        identity=generate_identity_keypair(),
        exchange=generate_exchange_keypair(),
    )


@dataclass
class SealSendClient:
    me: LocalIdentity
    base_url: str = DEFAULT_SERVER_URL
    http: object = field(default_factory=requests.Session)
    token: Optional[str] = None
    # known recipients, filled on demand from the server
    contacts: Dict[str, PublicIdentity] = field(default_factory=dict)

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def _auth_headers(self) -> dict:
        if not self.token:
            self.login()
        return {"Authorization": f"Bearer {self.token}"}

    @staticmethod
    def _check(resp, *expected: int):
        if resp.status_code not in expected:
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = resp.text
            raise ApiError(resp.status_code, detail)
        return resp

    def _request(self, method: str, path: str, **kwargs):
        # requests has no default timeout; other sessions keep their own
        if isinstance(self.http, requests.Session):
            kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
        return getattr(self.http, method)(self._url(path), **kwargs)

    def ping(self) -> bool:
        resp = self._request("get", "/ping")
        return resp.status_code == 200 and resp.text == "pong"

    def register(self, registration_token: Optional[str] = None) -> None:
        headers = {"X-Registration-Token": registration_token} if registration_token else {}
        resp = self._request(
            "post",
            "/users",
            json={
                "username": self.me.username,
                "identity_public_key": _b64e(self.me.identity.public),
                "exchange_public_key": _b64e(self.me.exchange.public),
            },
            headers=headers,
        )
        self._check(resp, 201)

    def lookup_user(self, username: str) -> PublicIdentity:
        if username in self.contacts:
            return self.contacts[username]
        resp = self._check(self._request("get", "/users", params={"username": username}), 200)
        data = resp.json()
        user = PublicIdentity(
            username=data["username"],
            identity_public_key=_b64d(data["identity_public_key"]),
            exchange_public_key=_b64d(data["exchange_public_key"]),
        )
        self.contacts[username] = user
        return user

    def login(self) -> str:
        resp = self._check(
            self._request("get", "/auth/challenge", params={"username": self.me.username}), 200
        )
        nonce = resp.json()["nonce"]
        signature = sign_ed25519_raw(self.me.identity.private, nonce.encode("utf-8"))
        resp = self._check(
            self._request(
                "post",
                "/auth/login",
                json={"username": self.me.username, "nonce": nonce, "signature": _b64e(signature)},
            ),
            200,
        )
        self.token = resp.json()["token"]
        return self.token

    def logout(self) -> None:
        if not self.token:
            return
        resp = self._request("post", "/auth/logout", headers={"Authorization": f"Bearer {self.token}"})
        self.token = None
        self._check(resp, 200, 401)

    def send_file(self, recipient: str, data: bytes, file_name: str, auto_delete: bool = False) -> RemoteFile:
        """Encrypt ``data`` for ``recipient`` under a one-time key pair and upload it."""
        recipient_pub = self.lookup_user(recipient).exchange_public_key
        ephemeral_pub, ciphertext = box.seal_for_recipient(data, recipient_pub)
        resp = self._request(
            "post",
            "/files",
            json={
                "metadata": {
                    "recipient": recipient,
                    "file_name": file_name,
                    "encrypted_ephemeral_key": _b64e(ephemeral_pub),
                    "auto_delete": auto_delete,
                },
                "encrypted_content": _b64e(ciphertext),
            },
            headers=self._auth_headers(),
        )
        return RemoteFile.from_json(self._check(resp, 201).json())

    def list_files(self) -> List[RemoteFile]:
        resp = self._check(self._request("get", "/files", headers=self._auth_headers()), 200)
        return [RemoteFile.from_json(item) for item in resp.json()]

    def download_file(self, file_id: str) -> Tuple[RemoteFile, bytes]:
        """
        Fetch and decrypt a file addressed to us.

        Raises:
            DecryptionError: the ciphertext does not open under our key. The
                server copy is left alone.
        """
        resp = self._check(
            self._request("get", "/files/download", params={"id": file_id}, headers=self._auth_headers()),
            200,
        )
        body = resp.json()
        meta = RemoteFile.from_json(body["metadata"])
        plaintext = box.open_from_sender(
            _b64d(body["encrypted_content"]),
            meta.encrypted_ephemeral_key,
            self.me.exchange.private,
        )
        return meta, plaintext

    def delete_file(self, file_id: str) -> None:
        self._check(
            self._request("delete", "/files", params={"id": file_id}, headers=self._auth_headers()),
            200,
        )
