"""Shared declarative base for all ORM models.

Having a single ``Base`` class keeps the SQLAlchemy metadata in one place
so that migrations and metadata operations (such as creating tables
for tests) work consistently across the application.
"""

import uuid

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase


def new_uuid() -> str:
    return str(uuid.uuid4())


def exact_string(length: int) -> String:
    """``VARCHAR`` compared byte for byte on MySQL, where the default collation ignores case."""

    return String(length).with_variant(String(length, collation="utf8mb4_bin"), "mysql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass
