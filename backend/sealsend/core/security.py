from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from sealsend.models import AuthSession
from sealsend.services.authenticator import Authenticator
from sealsend.services.transfer import TransferService


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_transfer_service(request: Request) -> TransferService:
    return request.app.state.transfer


def get_current_session(
    authorization: Optional[str] = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthSession:
    """
    Dependency: resolve ``Authorization: Bearer <token>`` to a live session.
    Raises Unauthorized (401) for a missing/malformed header or an
    unknown/expired token; expired rows are purged on the way.
    """
    return authenticator.authenticate(authorization)


def get_current_username(session: AuthSession = Depends(get_current_session)) -> str:
    return session.username
