from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tirecode.models.base import Base


class SearchLog(Base):
    """Append-only record of public lookups."""

    __tablename__ = "search_log"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    query: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    query_type: Mapped[str] = mapped_column(String(16), nullable=False)  # code/size/unknown
    result_found: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ip_hash: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, index=True
    )
