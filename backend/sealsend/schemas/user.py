from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sealsend.crypto.keys import PUBLIC_KEY_LEN
from sealsend.schemas.common import B64Bytes


class UserIn(BaseModel):
    """Identity registration: public halves only."""
    model_config = ConfigDict(extra='forbid')

    username: str = Field(
        min_length=1,
        max_length=64,
        pattern=r'^[A-Za-z0-9_.\-]+$',
    )
    identity_public_key: B64Bytes
    exchange_public_key: B64Bytes

    @field_validator('identity_public_key', 'exchange_public_key')
    @classmethod
    def validate_key_length(cls, v: bytes) -> bytes:
        if len(v) != PUBLIC_KEY_LEN:
            raise ValueError(f'key must be {PUBLIC_KEY_LEN} bytes')
        return v


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    identity_public_key: B64Bytes
    exchange_public_key: B64Bytes
