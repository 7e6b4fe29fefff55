# sealsend/models/file_record.py
from datetime import datetime

from sqlalchemy import Boolean, DateTime, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from sealsend.db.base import Base
from sealsend.models._time import utcnow


class FileRecord(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    sender: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    recipient: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Sender's one-time X25519 public key. Ciphertext lives in the blob store under ``id``.
    encrypted_ephemeral_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    auto_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def is_party(self, username: str) -> bool:
        return username in (self.sender, self.recipient)
