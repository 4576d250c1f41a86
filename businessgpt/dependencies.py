"""
FastAPI Dependencies
====================
Reusable dependencies for authentication, database access and the chat service.
"""

import time
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import auth
from .chat_service import QuotaGuardedChatService
from .config import Settings
from .database import get_db
from .models.user import User
from .users import get_user


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _extract_token(request: Request) -> Optional[str]:
    # Cookie first, then Authorization header
    token = request.cookies.get(auth.ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]
    return token


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
) -> Optional[User]:
    """
    Get current user if authenticated, None otherwise.
    """
    token = _extract_token(request)
    if not token:
        return None

    payload = auth.decode_access_token(token, settings.secret_key)
    if not payload:
        return None

    if payload.get("exp", 0) < time.time():
        return None

    user_id = payload.get("user_id")
    if not user_id:
        return None

    return await get_user(db, user_id)


async def get_current_user_required(
    user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """
    Get current user, raise 401 if not authenticated.
    """
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


def get_chat_service(
    request: Request,
    settings: Settings = Depends(get_app_settings)
) -> QuotaGuardedChatService:
    return QuotaGuardedChatService(
        session_factory=request.app.state.session_factory,
        providers=request.app.state.providers,
        daily_limit=settings.daily_chat_limit
    )
