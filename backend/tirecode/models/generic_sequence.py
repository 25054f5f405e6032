"""Generic sequence table scoped by name (e.g. public tire codes)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from tirecode.models.base import Base


class GenericSequence(Base):
    """Stores reusable sequence counters keyed by name."""

    __tablename__ = "gen_seq_no"

    seq_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq_no: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, onupdate=datetime.now
    )
