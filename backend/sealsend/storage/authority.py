"""
Storage authority: the single owner of users, challenges, sessions and file
metadata, plus the blob store holding file ciphertext.

Constructed explicitly at startup and handed to the services that need it.
Each logical table is guarded by its own readers-writer lock; blob I/O is done
outside those locks so slow storage never stalls metadata access.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sealsend.core.errors import Conflict, StorageFailure
from sealsend.db.init_db import init_db
from sealsend.db.session import make_engine, make_sessionmaker
from sealsend.models import AuthSession, Challenge, FileRecord, User
from sealsend.storage.blob_store import BlobNotFound, BlobStore, BlobStoreError, build_blob_store
from sealsend.storage.locks import ReadWriteLock

logger = logging.getLogger(__name__)


class StorageAuthority:

    def __init__(self, engine: Engine, blob_store: BlobStore):
        self.engine = engine
        self.blob_store = blob_store
        self._make_session = make_sessionmaker(engine)

        self._users_lock = ReadWriteLock()
        self._files_lock = ReadWriteLock()
        self._sessions_lock = ReadWriteLock()
        self._challenges_lock = ReadWriteLock()

        init_db(engine)

    @classmethod
    def from_settings(cls, settings, blob_store: BlobStore | None = None) -> "StorageAuthority":
        if blob_store is None:
            blob_store = build_blob_store(settings)
        return cls(make_engine(settings.database_url), blob_store)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _db(self, action: str) -> Iterator[Session]:
        db = self._make_session()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("storage failure during %s", action)
            raise StorageFailure() from e
        finally:
            db.close()

    # --- users ---

    def add_user(self, user: User) -> User:
        with self._users_lock.write(), self._db("add_user") as db:
            if db.get(User, user.username) is not None:
                raise Conflict("user already exists")
            db.add(user)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise Conflict("user already exists") from e
            return user

    def get_user(self, username: str) -> Optional[User]:
        with self._users_lock.read(), self._db("get_user") as db:
            return db.get(User, username)

    def list_users(self) -> List[User]:
        with self._users_lock.read(), self._db("list_users") as db:
            return list(db.scalars(select(User).order_by(User.username)))

    def delete_user(self, username: str) -> bool:
        with self._users_lock.write(), self._db("delete_user") as db:
            result = db.execute(delete(User).where(User.username == username))
            db.commit()
            return result.rowcount > 0

    # --- files ---

    def save_file(self, record: FileRecord, content: bytes) -> FileRecord:
        """Write the blob first, then the metadata row; undo the blob if the row fails."""
        try:
            self.blob_store.save(record.id, content)
        except BlobStoreError as e:
            logger.exception("failed to save blob %s", record.id)
            raise StorageFailure() from e

        try:
            with self._files_lock.write(), self._db("save_file") as db:
                db.add(record)
                db.commit()
                return record
        except StorageFailure:
            try:
                self.blob_store.delete(record.id)
            except BlobStoreError:
                logger.exception("failed to remove orphaned blob %s", record.id)
            raise

    def get_file_metadata(self, file_id: str) -> Optional[FileRecord]:
        with self._files_lock.read(), self._db("get_file_metadata") as db:
            return db.get(FileRecord, file_id)

    def get_file_content(self, file_id: str) -> bytes:
        try:
            return self.blob_store.get(file_id)
        except BlobNotFound as e:
            # metadata without a blob means the pair is broken
            logger.error("blob missing for file %s", file_id)
            raise StorageFailure() from e
        except BlobStoreError as e:
            logger.exception("failed to read blob %s", file_id)
            raise StorageFailure() from e

    def list_files(self, recipient: str) -> List[FileRecord]:
        stmt = (
            select(FileRecord)
            .where(FileRecord.recipient == recipient)
            .order_by(FileRecord.timestamp, FileRecord.id)
        )
        with self._files_lock.read(), self._db("list_files") as db:
            return list(db.scalars(stmt))

    def delete_file(self, file_id: str) -> bool:
        """Remove the blob, then the metadata row. Returns False if no row existed."""
        try:
            self.blob_store.delete(file_id)
        except BlobStoreError as e:
            logger.exception("failed to delete blob %s", file_id)
            raise StorageFailure() from e

        with self._files_lock.write(), self._db("delete_file") as db:
            result = db.execute(delete(FileRecord).where(FileRecord.id == file_id))
            db.commit()
            return result.rowcount > 0

    # --- challenges ---

    def create_challenge(self, username: str, nonce: str, now: datetime) -> Challenge:
        with self._challenges_lock.write(), self._db("create_challenge") as db:
            challenge = db.merge(Challenge(username=username, nonce=nonce, created_at=now))
            db.commit()
            return challenge

    def consume_challenge(self, username: str) -> Optional[Challenge]:
        """Read and delete in one step; a challenge can only ever be returned once."""
        with self._challenges_lock.write(), self._db("consume_challenge") as db:
            challenge = db.get(Challenge, username)
            if challenge is None:
                return None
            db.delete(challenge)
            db.commit()
            return challenge

    def purge_stale_challenges(self, created_before: datetime) -> int:
        with self._challenges_lock.write(), self._db("purge_stale_challenges") as db:
            result = db.execute(delete(Challenge).where(Challenge.created_at < created_before))
            db.commit()
            return result.rowcount

    # --- sessions ---

    def create_session(self, session: AuthSession) -> AuthSession:
        with self._sessions_lock.write(), self._db("create_session") as db:
            db.add(session)
            db.commit()
            return session

    def get_session(self, token: str) -> Optional[AuthSession]:
        """Raw lookup with no expiry check. Use ``get_valid_session`` for auth."""
        with self._sessions_lock.read(), self._db("get_session") as db:
            return db.get(AuthSession, token)

    def get_valid_session(self, token: str, now: datetime) -> Optional[AuthSession]:
        """
        Return the session if it exists and has not expired.
        An expired row is deleted before returning None.
        """
        session = self.get_session(token)
        if session is None:
            return None
        if not session.is_expired(now):
            return session

        with self._sessions_lock.write(), self._db("expire_session") as db:
            # re-read under the write lock so only one caller purges
            current = db.get(AuthSession, token)
            if current is not None and not current.is_expired(now):
                return current
            if current is not None:
                db.delete(current)
                db.commit()
                logger.warning("expired session purged for %s", current.username)
            return None

    def delete_session(self, token: str) -> bool:
        with self._sessions_lock.write(), self._db("delete_session") as db:
            result = db.execute(delete(AuthSession).where(AuthSession.token == token))
            db.commit()
            return result.rowcount > 0

    def purge_expired_sessions(self, now: datetime) -> int:
        with self._sessions_lock.write(), self._db("purge_expired_sessions") as db:
            result = db.execute(delete(AuthSession).where(AuthSession.expires_at <= now))
            db.commit()
            return result.rowcount
