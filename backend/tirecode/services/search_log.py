"""Search analytics: best-effort logging of lookups plus admin reporting queries."""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timedelta
from typing import Any, Literal, Optional

from loguru import logger
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tirecode.models.search_log import SearchLog

QueryType = Literal["code", "size", "unknown"]


def hash_ip(ip: str) -> str:
    return hashlib.sha256(ip.encode()).hexdigest()


class SearchLogService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    async def log_search(
        self,
        query: str,
        query_type: QueryType,
        result_found: bool,
        ip: Optional[str] = None,
    ) -> None:
        """Append a search record. Never raises: failures are logged and dropped."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        insert(SearchLog).values(
                            query=query,
                            query_type=query_type,
                            result_found=result_found,
                            ip_hash=hash_ip(ip) if ip else None,
                            created_at=datetime.now(),
                        )
                    )
        except Exception as exc:
            logger.bind(query=query, query_type=query_type, error=str(exc)).error(
                "search_log_write_failed"
            )
            return
        logger.bind(query=query, query_type=query_type, found=result_found).debug(
            "search_logged"
        )

    def log_search_nowait(
        self,
        query: str,
        query_type: QueryType,
        result_found: bool,
        ip: Optional[str] = None,
    ) -> asyncio.Task:
        """Schedule ``log_search`` without awaiting it."""

        task = asyncio.create_task(self.log_search(query, query_type, result_found, ip))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled writes; used on shutdown and in tests."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def get_analytics(self, *, days: int = 7, limit: int = 10) -> dict[str, Any]:
        since = datetime.now() - timedelta(days=days)
        window = SearchLog.created_at >= since

        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(SearchLog).where(window))
            ).scalar_one()
            successful = (
                await session.execute(
                    select(func.count())
                    .select_from(SearchLog)
                    .where(window, SearchLog.result_found.is_(True))
                )
            ).scalar_one()
            by_type = (
                await session.execute(
                    select(SearchLog.query_type, func.count())
                    .where(window)
                    .group_by(SearchLog.query_type)
                    .order_by(SearchLog.query_type)
                )
            ).all()
            recent = (
                await session.execute(
                    select(SearchLog)
                    .where(window)
                    .order_by(SearchLog.created_at.desc(), SearchLog.id.desc())
                    .limit(limit)
                )
            ).scalars().all()

        success_rate = (successful / total * 100) if total else 0.0
        return {
            "totalSearches": total,
            "successfulSearches": successful,
            "failedSearches": total - successful,
            "successRate": f"{success_rate:.2f}%",
            "searchesByType": [{"type": qtype, "count": count} for qtype, count in by_type],
            "recentSearches": [
                {
                    "query": row.query,
                    "queryType": row.query_type,
                    "resultFound": row.result_found,
                    "createdAt": row.created_at.isoformat(),
                }
                for row in recent
            ],
        }

    async def get_top_searches(self, *, limit: int = 10, days: int = 7) -> list[dict[str, Any]]:
        since = datetime.now() - timedelta(days=days)
        hits = func.count(SearchLog.id).label("hits")
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(SearchLog.query, SearchLog.query_type, SearchLog.result_found, hits)
                    .where(SearchLog.created_at >= since)
                    .group_by(SearchLog.query, SearchLog.query_type, SearchLog.result_found)
                    .order_by(hits.desc(), SearchLog.query)
                    .limit(limit)
                )
            ).all()
        return [
            {"query": query, "queryType": qtype, "resultFound": found, "count": count}
            for query, qtype, found, count in rows
        ]
