"""
Transfer orchestration: registration, identity lookup and the file
upload/list/download/delete operations, each bound to an authenticated caller.

The server never sees plaintext. Uploads carry ciphertext plus the sender's
one-time exchange public key; the service only validates shapes, assigns ids
and timestamps, and enforces who may touch which record.
"""
from __future__ import annotations

import hmac
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sealsend.core.errors import Forbidden, NotFound, ValidationFailed
from sealsend.crypto.keys import PUBLIC_KEY_LEN, InvalidKeyError, check_exchange_public_key
from sealsend.models import FileRecord, User
from sealsend.models._time import utcnow
from sealsend.storage.authority import StorageAuthority

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")
MAX_FILE_NAME_LEN = 255


@dataclass(frozen=True)
class UploadMetadata:
    """Client-declared fields of an upload. Anything else is server-assigned."""
    recipient: str
    file_name: str
    encrypted_ephemeral_key: bytes
    auto_delete: bool = False


@dataclass(frozen=True)
class Download:
    record: FileRecord
    content: bytes


def _check_username(username: str) -> str:
    if not username or not USERNAME_RE.match(username):
        raise ValidationFailed("invalid username")
    return username


def _check_key(name: str, key: bytes) -> bytes:
    if not key or len(key) != PUBLIC_KEY_LEN:
        raise ValidationFailed(f"{name} must be {PUBLIC_KEY_LEN} bytes")
    return key


def _clean_file_name(file_name: str) -> str:
    # keep only the base name; the recipient decides where to write it
    name = (file_name or "").replace("\\", "/").split("/")[-1].strip()
    if not name or name in (".", "..") or "\x00" in name:
        raise ValidationFailed("invalid file name")
    if len(name) > MAX_FILE_NAME_LEN:
        raise ValidationFailed("file name too long")
    return name


class TransferService:

    def __init__(
        self,
        storage: StorageAuthority,
        registration_token: str = "",
        max_upload_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.registration_token = registration_token
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock

    # --- identities ---

    def check_registration_token(self, supplied: Optional[str]) -> None:
        """No-op when registration is open; otherwise the shared token must match."""
        if not self.registration_token:
            return
        if not hmac.compare_digest((supplied or "").encode("utf-8"), self.registration_token.encode("utf-8")):
            logger.warning("invalid registration token")
            raise Forbidden("forbidden: invalid registration token")

    def register(
        self,
        username: str,
        identity_public_key: bytes,
        exchange_public_key: bytes,
        registration_token: Optional[str] = None,
    ) -> User:
        self.check_registration_token(registration_token)

        _check_username(username)
        _check_key("identity_public_key", identity_public_key)
        _check_key("exchange_public_key", exchange_public_key)
        try:
            check_exchange_public_key(exchange_public_key)
        except InvalidKeyError as e:
            raise ValidationFailed("exchange_public_key is not a usable X25519 key") from e

        user = self.storage.add_user(
            User(
                username=username,
                identity_public_key=bytes(identity_public_key),
                exchange_public_key=bytes(exchange_public_key),
                created_at=self.clock(),
            )
        )
        logger.info("user registered: %s", username)
        return user

    def get_user(self, username: str) -> User:
        user = self.storage.get_user(username)
        if user is None:
            raise NotFound("user not found")
        return user

    def list_users(self) -> List[User]:
        return self.storage.list_users()

    # --- files ---

    def upload(self, sender: str, metadata: UploadMetadata, content: bytes) -> FileRecord:
        """
        Store an encrypted file for ``metadata.recipient``.

        ``sender`` is the authenticated caller; the id and timestamp are
        always assigned here.
        """
        if not metadata.recipient:
            raise ValidationFailed("recipient required")
        if not content:
            raise ValidationFailed("encrypted content required")
        if self.max_upload_bytes is not None and len(content) > self.max_upload_bytes:
            raise ValidationFailed("file too large")
        _check_key("encrypted_ephemeral_key", metadata.encrypted_ephemeral_key)
        file_name = _clean_file_name(metadata.file_name)

        if self.storage.get_user(metadata.recipient) is None:
            raise NotFound("recipient not found")

        record = FileRecord(
            id=str(uuid.uuid4()),
            sender=sender,
            recipient=metadata.recipient,
            file_name=file_name,
            encrypted_ephemeral_key=bytes(metadata.encrypted_ephemeral_key),
            auto_delete=metadata.auto_delete,
            timestamp=self.clock(),
        )
        self.storage.save_file(record, content)
        logger.info("file uploaded: id=%s sender=%s recipient=%s", record.id, sender, record.recipient)
        return record

    def list_files(self, caller: str) -> List[FileRecord]:
        return self.storage.list_files(caller)

    def _get_for(self, caller: str, file_id: str) -> FileRecord:
        if not file_id:
            raise ValidationFailed("id required")
        record = self.storage.get_file_metadata(file_id)
        if record is None:
            raise NotFound("file not found")
        if not record.is_party(caller):
            raise Forbidden("forbidden")
        return record

    def download(self, caller: str, file_id: str) -> Download:
        """
        Fetch metadata and ciphertext. Does not apply auto-delete: call
        ``finalize_download`` once the response has actually been delivered.
        """
        record = self._get_for(caller, file_id)
        content = self.storage.get_file_content(file_id)
        logger.info("file downloaded: id=%s by=%s", file_id, caller)
        return Download(record=record, content=content)

    def finalize_download(self, record: FileRecord) -> None:
        if record.auto_delete:
            self.storage.delete_file(record.id)
            logger.info("file auto-deleted after download: id=%s", record.id)

    def delete(self, caller: str, file_id: str) -> None:
        self._get_for(caller, file_id)
        self.storage.delete_file(file_id)
        logger.info("file deleted: id=%s by=%s", file_id, caller)
