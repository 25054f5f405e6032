"""Read-only catalog queries used by the lookup path."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tirecode.models.tire_code import TireCode
from tirecode.models.tire_size import TireSize
from tirecode.models.tire_variant import TireVariant


class CatalogReader:
    """Each query opens its own session so independent reads can run concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_code_by_public(self, code_public: str) -> Optional[TireCode]:
        async with self._session_factory() as session:
            return await session.scalar(
                select(TireCode).where(TireCode.code_public == code_public)
            )

    async def get_code_by_size_id(self, tire_size_id: str) -> Optional[TireCode]:
        async with self._session_factory() as session:
            return await session.scalar(
                select(TireCode).where(TireCode.tire_size_id == tire_size_id)
            )

    async def get_size_by_normalized(self, size_normalized: str) -> Optional[TireSize]:
        async with self._session_factory() as session:
            return await session.scalar(
                select(TireSize).where(TireSize.size_normalized == size_normalized)
            )

    async def get_size_by_id(self, tire_size_id: str) -> Optional[TireSize]:
        async with self._session_factory() as session:
            return await session.get(TireSize, tire_size_id)

    async def get_variants_by_size_id(self, tire_size_id: str) -> list[TireVariant]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TireVariant)
                .where(TireVariant.tire_size_id == tire_size_id)
                .order_by(TireVariant.load_index, TireVariant.speed_index)
            )
            return list(result.scalars().all())
