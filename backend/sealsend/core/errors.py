"""
Error taxonomy shared by the storage, authentication and transfer layers.

Core operations raise these; the HTTP layer maps them to responses in one
place (see ``sealsend.main``).
"""
from __future__ import annotations

from fastapi import status


class SealSendError(Exception):
    """Base class for all expected failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(SealSendError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Unauthorized(SealSendError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid authentication credentials"


class Forbidden(SealSendError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class ValidationFailed(SealSendError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Conflict(SealSendError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class StorageFailure(SealSendError):
    """Metadata or blob layer I/O failed. Detail is never sent to clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Storage failure"
