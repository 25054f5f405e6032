"""Helpers for retrying transient database failures (deadlock / lock wait)."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.core.config import settings
from tirecode.domain.errors import ConflictError

T = TypeVar("T")
MYSQL_RETRIABLE_ERROR_CODES = {1205, 1213, 3572}
MYSQL_RETRIABLE_SQLSTATES = {"40001"}
MYSQL_NOWAIT_LOCK_ERROR = 3572


def _extract_error_code(exc: DBAPIError) -> tuple[int | None, str | None]:
    orig = getattr(exc, "orig", None)
    if not orig:
        return None, None
    code = None
    sqlstate = getattr(orig, "sqlstate", None)
    if getattr(orig, "args", None):
        try:
            code = int(orig.args[0])
        except (TypeError, ValueError):
            code = None
    return code, sqlstate


def is_retriable(exc: DBAPIError) -> bool:
    code, sqlstate = _extract_error_code(exc)
    if code == MYSQL_NOWAIT_LOCK_ERROR and settings.DB_NOWAIT_LOCKS:
        return False  # NOWAIT conflicts surface as 409s instead
    if code in MYSQL_RETRIABLE_ERROR_CODES or sqlstate in MYSQL_RETRIABLE_SQLSTATES:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return "deadlock" in message or "lock wait timeout" in message


def raise_on_lock_conflict(exc: OperationalError) -> None:
    """Raise ``ConflictError`` for a NOWAIT lock refusal; otherwise re-raise ``exc``."""

    code, _ = _extract_error_code(exc)
    message = str(getattr(exc, "orig", exc)).lower()
    if code == MYSQL_NOWAIT_LOCK_ERROR or "could not obtain lock" in message:
        raise ConflictError("Resource is locked by another request. Please retry shortly.") from exc
    raise exc


async def with_db_retry(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    operation_name: str = "db_operation",
    attempts: int | None = None,
    base_delay: float | None = None,
    jitter: float | None = None,
) -> T:
    """Run ``operation`` and retry deadlocks / lock-wait timeouts with backoff and jitter.

    The session is rolled back before each retry, so ``operation`` must redo
    all of its reads and writes. Non-transient errors (including
    ``IntegrityError``) propagate on the first attempt.
    """

    attempts = attempts or settings.DB_RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.DB_RETRY_BASE_DELAY
    jitter = jitter if jitter is not None else settings.DB_RETRY_JITTER
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except DBAPIError as exc:
            if not is_retriable(exc) or attempt >= attempts:
                raise
            await session.rollback()
            sleep_for = base_delay * (2 ** (attempt - 1)) + random.uniform(0, jitter)
            logger.bind(
                operation=operation_name,
                attempt=attempt,
                max_attempts=attempts,
                sleep=sleep_for,
                error=str(exc),
            ).warning("db_retry_transient")
            await asyncio.sleep(sleep_for)
