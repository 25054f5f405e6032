"""Bulk CSV ingestion: parse uploads and hand the rows to the task runner."""

from __future__ import annotations

import csv
import io
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from celery.result import AsyncResult
from loguru import logger

from tirecode.core.cache import CacheClient
from tirecode.core.concurrency import run_in_thread_limited
from tirecode.core.config import settings
from tirecode.domain.errors import (
    BadRequestError,
    InvalidFormatError,
    MissingColumnError,
    NotFoundError,
)

EMPTY_CSV_MESSAGE = "CSV must contain at least a header and one data row"
JOB_KEY_PREFIX = "csv_import:job:"

_LOAD_INDEX = re.compile(r"\d+", re.ASCII)


def parse_csv_content(content: bytes | str) -> list[dict[str, Any]]:
    """Turn CSV text into ordered row dicts ``{row, size, loadIndex?, speedIndex?}``.

    Header names are matched case-insensitively after trimming. ``row`` is the
    line number a spreadsheet user would see (header is line 1).
    """

    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidFormatError("CSV file must be UTF-8 encoded") from exc

    reader = csv.DictReader(io.StringIO(content), skipinitialspace=True)
    if reader.fieldnames:
        reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]

    rows: list[dict[str, Any]] = []
    for index, record in enumerate(reader):
        values = {
            key: (value or "").strip()
            for key, value in record.items()
            if isinstance(key, str)
        }
        if not any(values.values()):
            continue
        line = index + 2
        size = values.get("size")
        if not size:
            raise MissingColumnError(f'Row {line}: Missing "size" column value')

        row: dict[str, Any] = {"row": line, "size": size}
        load_index = values.get("loadindex")
        if load_index:
            if not _LOAD_INDEX.fullmatch(load_index):
                raise InvalidFormatError(f"Row {line}: Invalid loadIndex")
            row["loadIndex"] = int(load_index)
        speed_index = values.get("speedindex")
        if speed_index:
            row["speedIndex"] = speed_index
        rows.append(row)

    if not rows:
        raise BadRequestError(EMPTY_CSV_MESSAGE)
    return rows


class TaskRunner(Protocol):
    async def submit(self, job_id: str, rows: list[dict[str, Any]]) -> None: ...

    async def status(self, job_id: str) -> dict[str, Any]: ...


class CeleryTaskRunner:
    """Dispatches import jobs to the Celery worker and reads their state back."""

    def _submit_sync(self, job_id: str, rows: list[dict[str, Any]]) -> None:
        from tirecode.tasks.csv_import import import_tire_rows

        import_tire_rows.apply_async(args=[{"rows": rows}], task_id=job_id)

    def _status_sync(self, job_id: str) -> dict[str, Any]:
        from tirecode.tasks.celery_app import app

        result = AsyncResult(job_id, app=app)
        info: dict[str, Any] = {"state": result.state.lower()}
        if result.successful():
            info["result"] = result.result
        elif result.failed():
            info["failedReason"] = str(result.result)
        return info

    async def submit(self, job_id: str, rows: list[dict[str, Any]]) -> None:
        await run_in_thread_limited(self._submit_sync, job_id, rows)

    async def status(self, job_id: str) -> dict[str, Any]:
        return await run_in_thread_limited(self._status_sync, job_id)


class CsvImportService:
    """Accepts parsed uploads as jobs and reports on jobs it has accepted.

    Every upload becomes a new job, even when the content repeats an earlier one.
    """

    def __init__(self, runner: TaskRunner, cache: CacheClient, ttl: Optional[int] = None) -> None:
        self._runner = runner
        self._cache = cache
        self._ttl = ttl or settings.CSV_IMPORT_JOB_TTL_SEC

    async def parse(self, content: bytes) -> list[dict[str, Any]]:
        return await run_in_thread_limited(parse_csv_content, content)

    async def submit(self, rows: list[dict[str, Any]]) -> str:
        if not rows:
            raise BadRequestError(EMPTY_CSV_MESSAGE)
        job_id = str(uuid.uuid4())
        await self._cache.set(
            f"{JOB_KEY_PREFIX}{job_id}",
            {
                "rows": len(rows),
                "submittedAt": datetime.now(timezone.utc).isoformat(),
            },
            self._ttl,
        )
        await self._runner.submit(job_id, rows)
        logger.bind(job_id=job_id, rows=len(rows)).info("csv_import_submitted")
        return job_id

    async def get_job_status(self, job_id: str) -> dict[str, Any]:
        record = await self._cache.get(f"{JOB_KEY_PREFIX}{job_id}")
        if record is None:
            raise NotFoundError(f"Job {job_id} not found")
        status = await self._runner.status(job_id)
        return {"id": job_id, **record, **status}
