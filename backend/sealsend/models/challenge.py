# sealsend/models/challenge.py
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from sealsend.db.base import Base
from sealsend.models._time import utcnow


class Challenge(Base):
    __tablename__ = "challenges"

    # one outstanding challenge per user; a new one replaces the old
    username: Mapped[str] = mapped_column(String(64), primary_key=True)
    nonce: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
