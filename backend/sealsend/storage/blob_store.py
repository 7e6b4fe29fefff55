"""
Blob stores hold the opaque ciphertext of each file, keyed by file id.

Every backend implements the same three operations: ``save``, ``get`` and
``delete``. ``get`` of a missing id raises ``BlobNotFound``; ``delete`` of a
missing id is a no-op. Any other backend failure raises ``BlobStoreError``.
"""
from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


class BlobStoreError(Exception):
    pass


class BlobNotFound(BlobStoreError):
    pass


class BlobStore(ABC):

    @abstractmethod
    def save(self, blob_id: str, content: bytes) -> None: ...

    @abstractmethod
    def get(self, blob_id: str) -> bytes: ...

    @abstractmethod
    def delete(self, blob_id: str) -> None: ...


class LocalBlobStore(BlobStore):
    """Stores each blob as ``<base_dir>/<id>.bin``."""

    def __init__(self, base_dir: str):
        self.base_dir = base_dir
        os.makedirs(base_dir, exist_ok=True)

    def _path(self, blob_id: str) -> str:
        # ids become file names; refuse anything that could escape base_dir
        if not _SAFE_ID.match(blob_id):
            raise BlobStoreError(f"invalid blob id: {blob_id!r}")
        return os.path.join(self.base_dir, f"{blob_id}.bin")

    def save(self, blob_id: str, content: bytes) -> None:
        path = self._path(blob_id)
        tmp = path + ".tmp"
        try:
            with open(tmp, "wb") as f:
                f.write(content)
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.remove(tmp)
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("could not remove temp file %s", tmp)
            raise BlobStoreError(f"failed to write blob {blob_id}") from e

    def get(self, blob_id: str) -> bytes:
        path = self._path(blob_id)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise BlobNotFound(blob_id) from e
        except OSError as e:
            raise BlobStoreError(f"failed to read blob {blob_id}") from e

    def delete(self, blob_id: str) -> None:
        path = self._path(blob_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise BlobStoreError(f"failed to delete blob {blob_id}") from e


class MemoryBlobStore(BlobStore):

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = Lock()

    def save(self, blob_id: str, content: bytes) -> None:
        with self._lock:
            self._blobs[blob_id] = bytes(content)

    def get(self, blob_id: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[blob_id]
            except KeyError as e:
                raise BlobNotFound(blob_id) from e

    def delete(self, blob_id: str) -> None:
        with self._lock:
            self._blobs.pop(blob_id, None)

    def __len__(self) -> int:
        return len(self._blobs)


class S3BlobStore(BlobStore):
    """
    Object-store backend. ``client`` is a boto3 S3 client; pass a stub in tests.
    """

    def __init__(self, bucket: str, client=None, region: str | None = None):
        if not bucket:
            raise ValueError("S3 bucket name required")
        if client is None:
            client = boto3.client("s3", region_name=region)
        self.client = client
        self.bucket = bucket

    def save(self, blob_id: str, content: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=blob_id, Body=content)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"failed to put object {blob_id}") from e

    def get(self, blob_id: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=blob_id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise BlobNotFound(blob_id) from e
            raise BlobStoreError(f"failed to get object {blob_id}") from e
        except BotoCoreError as e:
            raise BlobStoreError(f"failed to get object {blob_id}") from e
        body = resp["Body"]
        try:
            return body.read()
        except BotoCoreError as e:
            raise BlobStoreError(f"failed to read object {blob_id}") from e
        finally:
            body.close()

    def delete(self, blob_id: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=blob_id)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"failed to delete object {blob_id}") from e


def build_blob_store(settings) -> BlobStore:
    """Pick the backend once at startup from configuration."""
    kind = settings.storage_type.lower()
    if kind == "s3":
        logger.info("Using S3 blob storage (bucket: %s)", settings.aws_bucket)
        return S3BlobStore(settings.aws_bucket, region=settings.aws_region)
    if kind == "memory":
        logger.info("Using in-memory blob storage")
        return MemoryBlobStore()
    if kind == "local":
        logger.info("Using local blob storage (dir: %s)", settings.storage_dir)
        return LocalBlobStore(settings.storage_dir)
    raise ValueError(f"unknown storage_type: {settings.storage_type}")
