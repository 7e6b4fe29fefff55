# sealsend/api/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from sealsend.core.security import get_authenticator, get_current_session
from sealsend.models import AuthSession
from sealsend.schemas.auth import ChallengeOut, LoginIn, SessionOut
from sealsend.services.authenticator import Authenticator

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/challenge", response_model=ChallengeOut)
def get_challenge(
    username: str = Query(min_length=1, max_length=64),
    authenticator: Authenticator = Depends(get_authenticator),
):
    return authenticator.issue_challenge(username)


@router.post("/login", response_model=SessionOut)
def login(payload: LoginIn, authenticator: Authenticator = Depends(get_authenticator)):
    return authenticator.login(payload.username, payload.nonce, payload.signature)


@router.post("/logout")
def logout(
    session: AuthSession = Depends(get_current_session),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """Invalidate the bearer token used for this request."""
    authenticator.logout(session.token)
    return {"status": "ok"}
