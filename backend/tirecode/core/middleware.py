"""Custom ASGI middleware used by the FastAPI app."""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from tirecode.core.config import settings
from tirecode.core.logging import admin_id_ctx_var, request_id_ctx_var

_BODY_METHODS = {"POST", "PUT", "PATCH"}


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with its ID and emit one access log entry."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        tokens = (request_id_ctx_var.set(request_id), admin_id_ctx_var.set("-"))
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.bind(method=request.method, path=request.url.path).exception(
                "request_crashed"
            )
            raise
        else:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.bind(
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=elapsed_ms,
            )
            if response.status_code >= 500:
                log.error("request_completed")
            else:
                log.info("request_completed")
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_ctx_var.reset(tokens[0])
            admin_id_ctx_var.reset(tokens[1])


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuse request bodies whose declared size exceeds ``MAX_UPLOAD_BYTES``."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if request.method in _BODY_METHODS:
            declared = request.headers.get("content-length")
            if declared is not None and (
                not declared.isdigit() or int(declared) > settings.MAX_UPLOAD_BYTES
            ):
                logger.bind(path=request.url.path, declared=declared).warning(
                    "request_body_rejected"
                )
                return JSONResponse(
                    status_code=413,
                    content={"detail": "Request entity too large", "error": "payload_too_large"},
                )
        return await call_next(request)
