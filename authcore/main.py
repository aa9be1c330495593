"""authcore - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authcore.api import auth_router, health_router
from authcore.core import async_session_maker, init_models, settings, setup_logging
from authcore.core.logging import REQUEST_ID_HEADER, RequestContextMiddleware, get_logger
from authcore.services.auth import AuthService, build_auth_service

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def _token_purge_loop(auth_service: AuthService) -> None:
    """Periodically evict expired blacklist entries and verification tokens."""
    while True:
        await asyncio.sleep(settings.token_purge_interval_seconds)
        try:
            # Off the event loop; the stores release their lock between batches
            removed = await asyncio.to_thread(
                auth_service.purge_expired, None, settings.token_purge_batch_size
            )
            if any(removed.values()):
                logger.info(
                    f"Purged {removed['blacklist']} blacklist entries and "
                    f"{removed['verification_tokens']} verification tokens"
                )
        except Exception:
            logger.exception("Error purging expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(level=settings.log_level, format_type=settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    await init_models()

    auth_service: AuthService = app.state.auth_service
    purge_task = asyncio.create_task(_token_purge_loop(auth_service), name="token-purge")
    purge_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    purge_task.cancel()
    try:
        await purge_task
    except asyncio.CancelledError:
        pass
    await auth_service.wait_for_pending_emails()


def create_app(auth_service: AuthService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The auth service (signing key, blacklist, verification store) is built
    here, once, before the first request can arrive.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Authentication and token lifecycle service",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.auth_service = auth_service or build_auth_service(settings, async_session_maker)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(health_router)
    app.include_router(auth_router)

    return app


# Application instance
app = create_app()
