"""Tire size autocomplete from search history and the catalog."""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tirecode.core.cache import CacheClient, generate_cache_key
from tirecode.core.config import settings
from tirecode.models.search_log import SearchLog
from tirecode.models.tire_size import TireSize


def _escape_like(value: str) -> str:
    return re.sub(r"([\\%_])", r"\\\1", value)


class SuggestionsService:
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], cache: CacheClient
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache

    async def get_suggestions(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        """Popular successful size searches first, then catalog sizes sharing the prefix."""

        prefix = re.sub(r"\s+", "", (query or "").strip().upper())
        if not prefix:
            return []

        key = generate_cache_key("suggestions", prefix=prefix, limit=limit)
        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        like = f"{_escape_like(prefix)}%"
        hits = func.count(SearchLog.id).label("hits")
        async with self._session_factory() as session:
            popular = (
                await session.execute(
                    select(SearchLog.query, hits)
                    .where(
                        SearchLog.query.like(like, escape="\\"),
                        SearchLog.result_found.is_(True),
                        SearchLog.query_type == "size",
                    )
                    .group_by(SearchLog.query)
                    .order_by(hits.desc(), SearchLog.query)
                    .limit(limit)
                )
            ).all()
            suggestions = [
                {"sizeNormalized": size, "searchCount": count} for size, count in popular
            ]

            if len(suggestions) < limit:
                seen = [item["sizeNormalized"] for item in suggestions]
                stmt = select(TireSize.size_normalized).where(
                    TireSize.size_normalized.like(like, escape="\\")
                )
                if seen:
                    stmt = stmt.where(TireSize.size_normalized.not_in(seen))
                catalog_sizes = (
                    await session.execute(
                        stmt.order_by(TireSize.created_at.desc(), TireSize.size_normalized)
                        .limit(limit - len(suggestions))
                    )
                ).scalars().all()
                suggestions.extend(
                    {"sizeNormalized": size, "searchCount": 0} for size in catalog_sizes
                )

        await self._cache.set(key, suggestions, settings.SUGGESTIONS_CACHE_TTL_SEC)
        return suggestions
