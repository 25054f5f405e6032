from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from jose import JWTError
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.core.config import settings
from tirecode.core.db import get_session
from tirecode.core.deps import get_current_admin
from tirecode.core.logging import admin_id_ctx_var
from tirecode.core.rate_limit import limiter
from tirecode.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_token,
    verify_password_async,
)
from tirecode.models.admin_user import AdminRefreshToken, AdminUser
from tirecode.schemas.auth import LoginRequest, RefreshRequest, TokenResponse

router = APIRouter(prefix="/v1/admin/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def _revoke_all(session: AsyncSession, admin_id: str) -> None:
    await session.execute(
        update(AdminRefreshToken)
        .where(
            AdminRefreshToken.user_id == admin_id,
            AdminRefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now())
    )


def _issue_tokens(session: AsyncSession, admin: AdminUser) -> dict:
    access_token = create_access_token(admin.id, admin.email)
    refresh_token = create_refresh_token(admin.id, admin.email)
    session.add(
        AdminRefreshToken(
            user_id=admin.id,
            token_hash=hash_token(refresh_token),
            expires_at=datetime.now() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
    )
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": {"id": admin.id, "email": admin.email},
    }


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE)
async def login(
    request: Request,
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    email = payload.email.strip().lower()
    admin = (
        await session.execute(select(AdminUser).where(AdminUser.email == email))
    ).scalar_one_or_none()

    if (
        not admin
        or not admin.is_active
        or not await verify_password_async(payload.password, admin.password_hash)
    ):
        logger.bind(email=email).warning("admin_login_failed")
        raise _unauthorized("Invalid credentials")

    # A fresh login invalidates every refresh token handed out before it.
    await _revoke_all(session, admin.id)
    admin.last_login_at = datetime.now()
    request.state.admin_id = admin.id
    admin_id_ctx_var.set(admin.id)
    tokens = _issue_tokens(session, admin)
    await session.commit()
    logger.info("admin_login")
    return tokens


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: Request,
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_session),
):
    try:
        claims = decode_token(payload.refresh_token)
    except JWTError:
        raise _unauthorized("Invalid token")
    if claims.get("type") != REFRESH_TOKEN_TYPE or not claims.get("sub"):
        raise _unauthorized("Invalid token")

    stored = (
        await session.execute(
            select(AdminRefreshToken).where(
                AdminRefreshToken.token_hash == hash_token(payload.refresh_token),
                AdminRefreshToken.user_id == claims["sub"],
                AdminRefreshToken.revoked_at.is_(None),
                AdminRefreshToken.expires_at > datetime.now(),
            )
        )
    ).scalar_one_or_none()
    if stored is None:
        logger.bind(admin_id=claims["sub"]).warning("admin_refresh_rejected")
        raise _unauthorized("Invalid token")

    admin = await session.get(AdminUser, claims["sub"])
    if not admin or not admin.is_active:
        raise _unauthorized("Invalid token")

    stored.revoked_at = datetime.now()
    request.state.admin_id = admin.id
    admin_id_ctx_var.set(admin.id)
    tokens = _issue_tokens(session, admin)
    await session.commit()
    logger.info("admin_token_refreshed")
    return tokens


@router.post("/logout")
async def logout(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_session),
):
    await _revoke_all(session, admin.id)
    await session.commit()
    logger.info("admin_logout")
    return {"detail": "Logged out"}
