from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tirecode.models.base import Base, new_uuid


class TireVariant(Base):
    """Load/speed index pair qualifying a tire size. Rows are never updated."""

    __tablename__ = "tire_variant"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    tire_size_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tire_size.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    load_index: Mapped[Optional[int]] = mapped_column(Integer)
    speed_index: Mapped[Optional[str]] = mapped_column(String(2))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )
