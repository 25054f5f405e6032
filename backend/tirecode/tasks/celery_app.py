"""Celery application configuration.

Uses Redis as broker and result backend for CSV import jobs.
"""

from __future__ import annotations

from typing import Any

from celery import Celery  # type: ignore[import-untyped]
from celery.signals import worker_process_init  # type: ignore[import-untyped]

from tirecode.core.config import settings
from tirecode.core.logging import setup_logging

app = Celery(
    "tirecode",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["tirecode.tasks.csv_import"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=settings.CSV_IMPORT_JOB_TTL_SEC,
    task_soft_time_limit=600,
    task_time_limit=660,
    task_routes={"tirecode.tasks.csv_import.*": {"queue": "imports"}},
)


@worker_process_init.connect  # type: ignore[untyped-decorator]
def _configure_worker_logging(**kwargs: Any) -> None:
    setup_logging("worker")
