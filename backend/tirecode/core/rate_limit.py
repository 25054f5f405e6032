"""Rate limiting utilities using SlowAPI."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

# Keyed on the socket peer. Behind a proxy, uvicorn rewrites the peer from
# X-Forwarded-For only for addresses in FORWARDED_ALLOW_IPS.
limiter = Limiter(key_func=get_remote_address)


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def init_rate_limiter(app: FastAPI) -> None:
    """Attach the rate limiter and exception handler to the FastAPI app."""

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    async def rate_limit_exceeded_handler(request, exc):  # type: ignore[unused-arg]
        return JSONResponse(status_code=429, content={"detail": "Too many requests"})

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
