"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from tirecode.domain.errors import (
    BadRequestError,
    ConflictError,
    DataIntegrityError,
    IncompleteVariantParamsError,
    InvalidFormatError,
    MissingParameterError,
    NotFoundError,
    TireCodeError,
)

ERROR_STATUS: dict[type[TireCodeError], int] = {
    InvalidFormatError: status.HTTP_400_BAD_REQUEST,
    MissingParameterError: status.HTTP_400_BAD_REQUEST,
    IncompleteVariantParamsError: status.HTTP_400_BAD_REQUEST,
    BadRequestError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DataIntegrityError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: TireCodeError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def tire_code_error_handler(request: Request, exc: TireCodeError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.bind(
        path=str(request.url.path),
        method=request.method,
        status=status_code,
        error=exc.kind,
        detail=exc.message,
    )
    if status_code >= 500:
        log.error("request_failed")
    else:
        log.warning("request_rejected")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


def init_error_handlers(app: FastAPI) -> None:
    """Attach the domain error translation to the FastAPI app."""

    app.add_exception_handler(TireCodeError, tire_code_error_handler)
