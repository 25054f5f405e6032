from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.core.db import get_session
from tirecode.core.logging import admin_id_ctx_var
from tirecode.core.security import ACCESS_TOKEN_TYPE, decode_token
from tirecode.models.admin_user import AdminUser


async def get_current_admin(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> AdminUser:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        )
    token = auth.split(" ", 1)[1]
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type"
        )

    admin_id = payload.get("sub")
    if not admin_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    admin = (
        await session.execute(select(AdminUser).where(AdminUser.id == admin_id))
    ).scalar_one_or_none()
    if not admin or not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin inactive or not found",
        )
    request.state.admin_id = admin.id
    admin_id_ctx_var.set(admin.id)
    session.expunge(admin)
    return admin
