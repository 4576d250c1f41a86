"""
BusinessGPT Beta backend
========================
Google login, quota-guarded chat proxy and chat history API.

Run:
    businessgpt            # console script
    uvicorn businessgpt.main:create_app --factory --port 8080
"""

import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

import httpx
import uvicorn
from authlib.integrations.starlette_client import OAuthError
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import auth
from .chat_service import QuotaGuardedChatService
from .config import Settings, get_settings
from .database import create_engine, create_session_factory, get_db, init_db
from .dependencies import (
    get_app_settings,
    get_chat_service,
    get_current_user_required,
)
from .exceptions import ProviderError, QuotaExceeded
from .history import get_chat_messages, get_user_chat_sessions
from .models.user import User
from .providers import ChatModel, ChatProvider, build_providers
from .quota import get_usage_info
from .schemas import ChatRequest, ChatResponse, ErrorResponse, HealthResponse, UsageResponse, UserResponse
from .users import upsert_user

SESSION_COOKIE = "businessgpt-session"


def configure_logging(level: str = "info") -> None:
    logger.remove()
    logger.add(sys.stdout, level=level.upper(), serialize=True, enqueue=True)


def get_cookie_settings(request: Request, settings: Settings) -> Dict[str, Any]:
    """Centralize auth cookie settings to keep attributes consistent."""
    if settings.cookie_secure is None:
        forwarded_proto = request.headers.get("x-forwarded-proto", "")
        is_secure = forwarded_proto == "https" or request.url.scheme == "https"
    else:
        is_secure = settings.cookie_secure

    return {"httponly": True, "secure": is_secure, "samesite": "lax", "path": "/"}


# ============================================================================
# Startup & Shutdown
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    settings: Settings = app.state.settings

    logger.info(f"Starting {settings.app_name}...")

    engine = create_engine(settings.database_url)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    await init_db(engine)
    logger.info("✓ Database initialized")

    app.state.oauth = auth.build_oauth(settings)
    logger.info("✓ Auth initialized")

    if app.state.providers is None:
        app.state.providers = build_providers(settings)
    if not settings.openai_api_key:
        logger.warning("OpenAI API key not configured - gpt-4o requests will fail")

    logger.info(f"🚀 {settings.app_name} ready!")

    yield

    logger.info("Shutting down...")
    await engine.dispose()


# ============================================================================
# FastAPI App
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[Mapping[ChatModel, ChatProvider]] = None
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Quota-guarded multi-model business chat assistant",
        version=settings.app_version,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.providers = providers

    # Holds the OAuth state between /auth/google and /auth/callback
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=SESSION_COOKIE,
        same_site="lax",
        https_only=False,
        max_age=600,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(QuotaExceeded)
    async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
        return JSONResponse(
            status_code=429,
            content={"error": str(exc), "used": exc.used, "limit": exc.limit}
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.error(f"LLM API error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": f"AI APIでエラーが発生しました: {exc}"}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=422, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers
        )


def register_routes(app: FastAPI) -> None:

    # ========================================================================
    # Auth Endpoints
    # ========================================================================

    @app.get("/auth/google")
    async def login(request: Request, settings: Settings = Depends(get_app_settings)):
        """Redirect to the Google consent screen."""
        client = request.app.state.oauth.create_client("google")
        if client is None:
            raise HTTPException(503, "Google login is not configured")
        return await client.authorize_redirect(request, settings.redirect_uri)

    @app.get("/auth/callback")
    async def auth_callback(
        request: Request,
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_app_settings)
    ):
        """OAuth callback - upserts the user and sets the access token cookie."""
        client = request.app.state.oauth.create_client("google")
        if client is None:
            raise HTTPException(503, "Google login is not configured")

        try:
            token = await client.authorize_access_token(request)
        except OAuthError as e:
            logger.warning(f"OAuth exchange failed: {e.error}")
            if e.error == "mismatching_state":
                raise HTTPException(400, "Invalid state")
            raise HTTPException(500, "Failed to exchange token")

        try:
            user_info = token.get("userinfo") or await client.userinfo(token=token)
        except httpx.HTTPError as e:
            logger.error(f"Failed to get user info: {e}")
            raise HTTPException(500, "Failed to get user info")

        try:
            identity = auth.parse_google_userinfo(user_info)
        except auth.IdentityError as e:
            logger.warning(f"Unusable Google profile: {e}")
            raise HTTPException(400, str(e))

        user = await upsert_user(db, identity)
        logger.info(f"User logged in: user_id={user.id}")

        access_token = auth.create_access_token(
            user.id,
            user.email,
            settings.secret_key,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
        )
        response = RedirectResponse(url="/chat", status_code=307)
        response.set_cookie(
            key=auth.ACCESS_TOKEN_COOKIE,
            value=access_token,
            max_age=settings.access_token_expire_minutes * 60,
            **get_cookie_settings(request, settings)
        )
        return response

    @app.get("/logout")
    async def logout(request: Request, settings: Settings = Depends(get_app_settings)):
        """Logout - clear the access token and OAuth session."""
        request.session.clear()
        response = RedirectResponse(url="/", status_code=307)
        response.delete_cookie(auth.ACCESS_TOKEN_COOKIE, **get_cookie_settings(request, settings))
        return response

    # ========================================================================
    # User Endpoints
    # ========================================================================

    @app.get("/api/users/me", response_model=UserResponse)
    async def get_current_user_info(
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user_required),
        settings: Settings = Depends(get_app_settings)
    ):
        """Current user profile with today's usage."""
        usage = await get_usage_info(db, user.id, settings.daily_chat_limit)
        return UserResponse(
            id=user.id,
            email=user.email,
            name=user.name,
            picture=user.picture,
            plan=user.plan,
            daily_limit=usage["limit"],
            today_usage=usage["used"]
        )

    @app.get("/api/users/me/usage", response_model=UsageResponse)
    async def get_my_usage(
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user_required),
        settings: Settings = Depends(get_app_settings)
    ):
        return await get_usage_info(db, user.id, settings.daily_chat_limit)

    # ========================================================================
    # Chat Endpoints
    # ========================================================================

    @app.post(
        "/api/chat",
        response_model=ChatResponse,
        responses={401: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
    )
    async def chat(
        body: ChatRequest,
        user: User = Depends(get_current_user_required),
        service: QuotaGuardedChatService = Depends(get_chat_service)
    ):
        """Run one quota-guarded chat turn."""
        turn = await service.handle(user.id, body.message, body.model)
        return ChatResponse(response=turn.reply, model=turn.model, tokens=turn.tokens)

    @app.get("/api/chat/sessions")
    async def get_chat_sessions(
        limit: int = 20,
        offset: int = 0,
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user_required)
    ):
        """Current user's chat sessions, newest first."""
        sessions = await get_user_chat_sessions(db, user.id, limit=max(1, min(limit, 100)), offset=max(offset, 0))
        return {"sessions": sessions}

    @app.get("/api/chat/sessions/{session_id}/messages")
    async def get_session_messages(
        session_id: int,
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user_required)
    ):
        messages = await get_chat_messages(db, user.id, session_id)
        if messages is None:
            raise HTTPException(404, "Session not found")
        return {"session_id": session_id, "messages": messages}

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_app_settings)
    ):
        """Check the health of the API and its database."""
        try:
            await db.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception as e:
            logger.warning(f"Health check database error: {e}")
            db_status = "disconnected"

        return HealthResponse(
            status="ok" if db_status == "connected" else "degraded",
            version=settings.app_version,
            database=db_status
        )


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "businessgpt.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
    )


if __name__ == "__main__":
    run()
