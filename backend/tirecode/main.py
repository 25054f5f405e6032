"""Application entry point for the Tire Code API service."""

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.api.deps import search_log_service
from tirecode.api.routes.admin_mappings import router as admin_mappings_router
from tirecode.api.routes.analytics import router as analytics_router
from tirecode.api.routes.auth import router as auth_router
from tirecode.api.routes.csv_import import router as csv_import_router
from tirecode.api.routes.lookup import router as lookup_router
from tirecode.core.cache import close_redis_client, get_redis_client
from tirecode.core.config import settings
from tirecode.core.db import get_session
from tirecode.core.errors import init_error_handlers
from tirecode.core.logging import setup_logging
from tirecode.core.middleware import BodySizeLimitMiddleware, RequestContextLogMiddleware
from tirecode.core.rate_limit import init_rate_limiter

setup_logging()

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

init_rate_limiter(app)
init_error_handlers(app)

app.add_middleware(RequestContextLogMiddleware)


def _cors_origins() -> list[str]:
    if settings.ENV == "prod":
        if not settings.CORS_ALLOWED_ORIGINS:
            raise RuntimeError("CORS_ALLOWED_ORIGINS must be configured for prod")
        return settings.CORS_ALLOWED_ORIGINS
    return settings.CORS_ALLOWED_ORIGINS or ["http://localhost:5173"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.on_event("startup")
async def startup_event():
    """Connect to Redis; lookups fall back to the in-process cache without it."""
    client = await get_redis_client()
    if client is None:
        logger.info("lookup_cache_memory_only")


@app.on_event("shutdown")
async def shutdown_event():
    """Flush pending search log writes and close Redis."""
    await search_log_service.drain()
    await close_redis_client()


@app.get("/api/healthz", tags=["system"], summary="Liveness probe")
def healthz() -> dict[str, str]:
    """Simple liveness probe that load balancers and monitors can call."""

    return {"status": "ok"}


@app.get("/api/readyz", tags=["system"], summary="Readiness probe")
async def readyz(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
        return {"ready": True}
    except Exception:
        raise HTTPException(status_code=503, detail="Database not reachable")


app.include_router(lookup_router, prefix="/api")
app.include_router(auth_router, prefix="/api")
app.include_router(admin_mappings_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")
app.include_router(csv_import_router, prefix="/api")
