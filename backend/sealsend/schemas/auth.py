from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from sealsend.schemas.common import B64Bytes, UtcDateTime


class ChallengeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    nonce: str


class LoginIn(BaseModel):
    """Signed challenge. ``signature`` covers the UTF-8 bytes of ``nonce``."""
    model_config = ConfigDict(extra='forbid')

    username: str = Field(min_length=1, max_length=64)
    nonce: str = Field(min_length=1, max_length=128)
    signature: B64Bytes


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    username: str
    expires_at: UtcDateTime
