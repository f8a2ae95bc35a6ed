"""FastAPI application entrypoint.

All routes prefixed /v1. Auto-generated OpenAPI docs at /docs.

The LLM gateway, WhatsApp transport, connection supervisor and turn lock
are created once during the lifespan and stored on app.state for
injection via Depends(). A WhatsApp watchdog runs on APScheduler.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.admin import router as admin_router
from app.api.v1.auth import router as auth_router
from app.api.v1.chat import router as chat_router
from app.api.v1.whatsapp import router as whatsapp_router
from app.core.config import settings
from app.core.exceptions import DeskChatError, RedisConnectionError
from app.db.database import async_session_factory, close_database, init_db
from app.db.redis import RedisClient, close_redis, get_redis
from app.services.chat.locking import TurnLock
from app.services.llm.gateway import LLMGateway
from app.services.settings import CredentialResolver
from app.services.whatsapp.supervisor import ConnectionSupervisor
from app.services.whatsapp.wppconnect import WPPConnectClient, WPPConnectTransport


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


async def _checked_redis() -> RedisClient | None:
    """The shared Redis client if it answers PING, else None (in-process turn lock)."""
    redis = get_redis()
    if redis is None:
        return None
    try:
        await redis.ping()
    except RedisConnectionError as e:
        logger.warning("redis_unavailable_using_local_lock", error=e.message)
        return None
    logger.info("redis_connected")
    return redis


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle.

    Creates the singletons and attaches them to app.state.
    Retrieved in request handlers via Depends() in app/api/deps.py.
    """
    # --- Startup ---
    logger.info(
        "app_startup",
        env=settings.app_env,
        database="sqlite" if settings.is_sqlite else "server",
        redis_configured=bool(settings.redis_url),
        gemini_key_in_env=bool(settings.gemini_api_key),
        groq_key_in_env=bool(settings.groq_api_key),
    )
    await init_db()

    app.state.llm_gateway = LLMGateway(CredentialResolver(async_session_factory))
    app.state.turn_lock = TurnLock(
        redis=await _checked_redis(),
        wait_seconds=settings.turn_lock_wait_seconds,
        lease_seconds=settings.turn_lock_timeout_seconds,
    )

    wpp_client = WPPConnectClient()
    app.state.whatsapp_transport = WPPConnectTransport(wpp_client)
    supervisor = ConnectionSupervisor(
        wpp_client,
        max_attempts=settings.whatsapp_reconnect_max_attempts,
        webhook_url=settings.whatsapp_webhook_url or None,
    )
    app.state.whatsapp_supervisor = supervisor

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        supervisor.watchdog,
        "interval",
        seconds=settings.whatsapp_watchdog_interval_seconds,
        id="whatsapp_watchdog",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler

    if settings.whatsapp_autoconnect:
        try:
            await supervisor.connect()
        except DeskChatError as e:
            logger.warning("whatsapp_autoconnect_failed", error=e.message)

    logger.info("app_providers_ready")
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")

    scheduler.shutdown(wait=False)

    await wpp_client.aclose()
    await close_redis()
    await close_database()


app = FastAPI(
    title="DeskChat API",
    description="Web and WhatsApp support chat with onboarding, departments and AI answers.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeskChatError)
async def deskchat_error_handler(request: Request, exc: DeskChatError) -> JSONResponse:
    """Structured error response for all DeskChat exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Mount all v1 routers
app.include_router(auth_router, prefix="/v1")
app.include_router(chat_router, prefix="/v1")
app.include_router(admin_router, prefix="/v1")
app.include_router(whatsapp_router, prefix="/v1")
