from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from sealsend.schemas.common import B64Bytes, UtcDateTime


class FileMetadataIn(BaseModel):
    """
    Upload metadata as sent by a client.

    ``id``, ``timestamp`` and ``sender`` are accepted for compatibility but
    ignored: the server assigns the first two and takes the sender from the
    session.
    """
    model_config = ConfigDict(extra='ignore')

    id: Optional[str] = None
    sender: Optional[str] = None
    recipient: str = Field(default='', max_length=64)
    file_name: str = Field(default='', max_length=1024)
    encrypted_ephemeral_key: B64Bytes
    timestamp: Optional[datetime] = None
    auto_delete: bool = False


class UploadIn(BaseModel):
    metadata: FileMetadataIn
    encrypted_content: B64Bytes


class FileMetadataOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender: str
    recipient: str
    file_name: str
    encrypted_ephemeral_key: B64Bytes
    timestamp: UtcDateTime
    auto_delete: bool


class DownloadOut(BaseModel):
    metadata: FileMetadataOut
    encrypted_content: B64Bytes
