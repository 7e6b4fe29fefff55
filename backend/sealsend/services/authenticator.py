"""
Challenge-response authentication.

A client proves control of a username by signing a one-time server nonce
with its Ed25519 identity key; a valid signature is exchanged for an opaque
session token with a fixed lifetime. Challenges are consumed by the first
login attempt that names them, whatever its outcome.
"""
from __future__ import annotations

import base64
import hmac
import logging
import os
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sealsend.core.errors import NotFound, Unauthorized
from sealsend.crypto.signatures import verify_ed25519_raw
from sealsend.models import AuthSession, Challenge
from sealsend.models._time import utcnow
from sealsend.storage.authority import StorageAuthority

logger = logging.getLogger(__name__)

NONCE_BYTES = 32
DEFAULT_SESSION_TTL = timedelta(hours=24)
DEFAULT_CHALLENGE_TTL = timedelta(minutes=5)

# One message for every login failure so responses are not an oracle
LOGIN_FAILED = "invalid or expired challenge"


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from ``Bearer <token>``; anything else is rejected."""
    if not authorization:
        raise Unauthorized("authorization header required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise Unauthorized("invalid authorization format")
    return parts[1]


class Authenticator:

    def __init__(
        self,
        storage: StorageAuthority,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        challenge_ttl: timedelta = DEFAULT_CHALLENGE_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.session_ttl = session_ttl
        self.challenge_ttl = challenge_ttl
        self.clock = clock

    def issue_challenge(self, username: str) -> Challenge:
        if self.storage.get_user(username) is None:
            raise NotFound("user not found")

        nonce = base64.b64encode(os.urandom(NONCE_BYTES)).decode("ascii")
        challenge = self.storage.create_challenge(username, nonce, self.clock())
        logger.info("challenge created for %s", username)
        return challenge

    def login(self, username: str, nonce: str, signature: bytes) -> AuthSession:
        """
        Verify a signed challenge and mint a session.

        The stored challenge is consumed before any check, so a failed attempt
        can never be retried with the same nonce.

        Raises:
            Unauthorized: missing/stale/mismatched challenge or bad signature.
        """
        challenge = self.storage.consume_challenge(username)
        now = self.clock()

        if challenge is None or not hmac.compare_digest(
            challenge.nonce.encode("utf-8"), nonce.encode("utf-8")
        ):
            raise Unauthorized(LOGIN_FAILED)
        if challenge.created_at + self.challenge_ttl < now:
            raise Unauthorized(LOGIN_FAILED)

        user = self.storage.get_user(username)
        if user is None:
            raise Unauthorized(LOGIN_FAILED)

        if not verify_ed25519_raw(user.identity_public_key, signature, nonce.encode("utf-8")):
            logger.warning("invalid login signature for %s", username)
            raise Unauthorized(LOGIN_FAILED)

        session = AuthSession(
            token=str(uuid.uuid4()),
            username=username,
            expires_at=now + self.session_ttl,
            created_at=now,
        )
        self.storage.create_session(session)
        logger.info("user logged in: %s", username)
        return session

    def authenticate(self, authorization: Optional[str]) -> AuthSession:
        token = parse_bearer(authorization)
        session = self.storage.get_valid_session(token, self.clock())
        if session is None:
            raise Unauthorized("invalid or expired session")
        return session

    def logout(self, token: str) -> None:
        if self.storage.delete_session(token):
            logger.info("session closed")

    def sweep_expired(self) -> tuple[int, int]:
        """Purge expired sessions and stale challenges. Returns (sessions, challenges)."""
        now = self.clock()
        sessions = self.storage.purge_expired_sessions(now)
        challenges = self.storage.purge_stale_challenges(now - self.challenge_ttl)
        if sessions or challenges:
            logger.info("swept %d expired sessions, %d stale challenges", sessions, challenges)
        return sessions, challenges
