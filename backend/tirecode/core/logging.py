"""Loguru setup shared by the API process and the Celery worker."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from sys import stdout
from typing import Any

from loguru import logger

from tirecode.core.config import settings

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
admin_id_ctx_var: ContextVar[str] = ContextVar("admin_id", default="-")

# Library loggers that are too chatty at INFO.
_QUIET_LOGGERS = ("passlib.handlers.bcrypt", "aiomysql", "celery.redirected")


class _StdlibToLoguru(logging.Handler):
    """Forward records from uvicorn, celery and friends into the loguru sink."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.bind(source=record.name).opt(exception=record.exc_info).log(
            level, record.getMessage()
        )


def _patch_record(record: dict[str, Any]) -> None:
    extra = record["extra"]
    extra.setdefault("request_id", request_id_ctx_var.get())
    extra.setdefault("admin_id", admin_id_ctx_var.get())


def setup_logging(component: str = "api") -> None:
    """Send every log line to stdout as one JSON object tagged with ``component``."""

    logging.basicConfig(handlers=[_StdlibToLoguru()], level=settings.LOG_LEVEL, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)

    logger.remove()
    logger.configure(patcher=_patch_record, extra={"component": component})
    logger.add(
        stdout,
        level=settings.LOG_LEVEL,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        serialize=settings.LOG_JSON,
    )
