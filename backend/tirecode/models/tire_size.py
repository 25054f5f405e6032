from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tirecode.models.base import Base, exact_string, new_uuid


class TireSize(Base):
    """ORM model for the ``tire_size`` table."""

    __tablename__ = "tire_size"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    size_raw: Mapped[str] = mapped_column(String(64), nullable=False)
    size_normalized: Mapped[str] = mapped_column(exact_string(16), unique=True, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    aspect_ratio: Mapped[int] = mapped_column(Integer, nullable=False)
    rim_diameter: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, onupdate=datetime.now
    )
