# sealsend/models/user.py
from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from sealsend.db.base import Base
from sealsend.models._time import utcnow


class User(Base):
    """Registered identity. Only the public halves of both key pairs are stored."""
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), primary_key=True)

    identity_public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # Ed25519, 32 bytes
    exchange_public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # X25519, 32 bytes

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
