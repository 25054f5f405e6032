from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tirecode.models.base import Base, exact_string, new_uuid


class TireCode(Base):
    """Public code mapped 1:1 to a ``TireSize``."""

    __tablename__ = "tire_code"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    code_public: Mapped[str] = mapped_column(exact_string(32), unique=True, nullable=False)
    tire_size_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tire_size.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, onupdate=datetime.now
    )
