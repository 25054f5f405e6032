"""Concurrency helpers for controlling background thread usage."""

from __future__ import annotations

from typing import Any, Callable

import anyio

from tirecode.core.config import settings

_csv_sem = anyio.Semaphore(settings.CSV_MAX_CONCURRENCY)
_security_sem = anyio.Semaphore(settings.SECURITY_MAX_CONCURRENCY)


async def run_in_thread_limited(func: Callable[..., Any], *args: Any):
    """Run a sync callable (CSV parsing, broker calls) in a worker thread with bounded concurrency."""

    async with _csv_sem:
        return await anyio.to_thread.run_sync(func, *args)


async def run_in_thread_security(func: Callable[..., Any], *args: Any):
    async with _security_sem:
        return await anyio.to_thread.run_sync(func, *args)
