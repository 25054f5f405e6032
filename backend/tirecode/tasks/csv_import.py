"""Celery task applying uploaded CSV rows to the catalog."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tirecode.core.cache import cache_client, close_redis_client
from tirecode.core.config import settings
from tirecode.domain.errors import TireCodeError
from tirecode.services.mappings import MappingService
from tirecode.tasks.celery_app import app


@app.task(
    name="tirecode.tasks.csv_import.import_tire_rows",
    bind=True,
    max_retries=settings.CSV_IMPORT_MAX_RETRIES,
    acks_late=True,
)  # type: ignore[untyped-decorator]
def import_tire_rows(self: Any, payload: dict[str, Any]) -> dict[str, Any]:
    """Apply every row of an upload; rows are idempotent so retries are safe."""

    rows = payload.get("rows") or []
    try:
        return asyncio.run(_import_rows_async(rows))
    except SQLAlchemyError as exc:
        countdown = 2 ** self.request.retries * 2
        logger.bind(
            job_id=self.request.id,
            attempt=self.request.retries + 1,
            countdown=countdown,
            error=str(exc),
        ).warning("csv_import_retry")
        raise self.retry(exc=exc, countdown=countdown)


async def _import_rows_async(
    rows: list[dict[str, Any]],
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> dict[str, Any]:
    engine = None
    if session_factory is None:
        engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    summary: dict[str, Any] = {
        "total": len(rows),
        "created": 0,
        "existing": 0,
        "variantsAdded": 0,
        "failed": 0,
        "errors": [],
    }
    try:
        for position, row in enumerate(rows):
            line = row.get("row", position + 2)
            async with session_factory() as session:
                service = MappingService(session, cache_client)
                try:
                    outcome = await service.import_row(
                        size=row.get("size") or "",
                        load_index=row.get("loadIndex"),
                        speed_index=row.get("speedIndex"),
                    )
                except TireCodeError as exc:
                    summary["failed"] += 1
                    summary["errors"].append({"row": line, "message": exc.message})
                    logger.bind(row=line, error=exc.message).warning("csv_row_rejected")
                    continue
            summary[outcome["status"]] += 1
            if outcome["variantAdded"]:
                summary["variantsAdded"] += 1
    finally:
        if engine is not None:
            await engine.dispose()
            # The Redis client is bound to this run's event loop.
            await close_redis_client()

    logger.bind(**{k: v for k, v in summary.items() if k != "errors"}).info("csv_import_finished")
    return summary
