"""
FastAPI Application Entry Point.
Builds the app with its services, middleware, CORS and routes, and wraps
it with Socket.IO.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from chat_relay.config import Settings, get_settings
from chat_relay.core.cache import RedisCache
from chat_relay.core.database import Database
from chat_relay.core.rate_limit import limiter
from chat_relay.core.websocket import create_socket_server, get_asgi_app
from chat_relay.services.message_transport import MessageTransportService
from chat_relay.services.notification_service import NotificationSocketService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger().setLevel(level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Starts the cache, database and notification flush task, and shuts
    them down in reverse order.
    """
    state = app.state
    await state.cache.connect()
    await state.database.connect()
    await state.notifications.start()
    logger.info("chat-relay started")
    yield
    await state.notifications.stop()
    await state.transport.stop()
    await state.database.dispose()
    await state.cache.disconnect()
    logger.info("chat-relay stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application and its services.

    Every service is constructed here and stored on ``app.state``; the
    Socket.IO server is available as ``app.state.sio``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Chat Relay",
        description="Real-time user-to-user messaging with end-to-end encryption and notification fan-out",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    database = Database(settings)
    cache = RedisCache(settings)
    sio = create_socket_server(settings)
    notifications = NotificationSocketService(sio, settings, database.session, cache)
    transport = MessageTransportService(sio, settings, database.session, notifications, cache)

    app.state.settings = settings
    app.state.database = database
    app.state.cache = cache
    app.state.sio = sio
    app.state.notifications = notifications
    app.state.transport = transport

    # Add rate limiter state and error handler
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS for the REST endpoints; Socket.IO applies its own cors_allowed_origins
    cors_origins = settings.get_allowed_origins_list()
    logger.info(f"CORS allowed origins: {cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_health_routes(app)

    from chat_relay.api.v1 import encryption, messages, typing_indicator

    app.include_router(
        messages.router,
        prefix="/api/user-messages",
        tags=["Messages"]
    )

    app.include_router(
        typing_indicator.router,
        prefix="/api/typing-indicator",
        tags=["Typing"]
    )

    app.include_router(
        encryption.router,
        prefix="/api/encryption",
        tags=["Encryption"]
    )

    return app


def _register_health_routes(app: FastAPI) -> None:

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Basic health check endpoint."""
        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "environment": request.app.state.settings.environment,
            }
        )

    @app.get("/health/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """
        Readiness check endpoint.
        Verifies database and cache connectivity.
        """
        state = request.app.state
        checks = {
            "database": False,
            "redis": "not_configured" if not state.settings.redis_url else state.cache.enabled,
        }

        try:
            async with state.database.session() as session:
                await session.execute(text("SELECT 1"))
                checks["database"] = True
        except Exception as e:
            logger.warning(f"Readiness database check failed: {e}")

        redis_ok = checks["redis"] == "not_configured" or checks["redis"] is True
        all_healthy = checks["database"] and redis_ok

        return JSONResponse(
            status_code=200 if all_healthy else 503,
            content={
                "status": "ready" if all_healthy else "not ready",
                "checks": checks,
            }
        )

    @app.get("/health/websocket", tags=["Health"])
    async def websocket_health_check(request: Request):
        """Socket namespaces, notification metrics and storage pool state."""
        state = request.app.state
        settings = state.settings
        return JSONResponse(
            status_code=200,
            content={
                "status": "configured",
                "websocket_endpoint": "/socket.io/",
                "transport": state.transport.get_metrics(),
                "notifications": state.notifications.get_metrics(),
                "pool": state.database.pool.stats(),
                "config": {
                    "path": "/socket.io",
                    "ping_interval": settings.ws_ping_interval,
                    "ping_timeout": settings.ws_ping_timeout,
                    "max_payload_bytes": settings.ws_max_payload_bytes,
                    "cors_origins": settings.allowed_origins,
                },
            }
        )

    @app.get("/", tags=["Root"])
    async def root(request: Request):
        """Root endpoint with API information."""
        return {
            "message": "Chat Relay API",
            "version": app.version,
            "docs": "/docs" if request.app.state.settings.debug else "Documentation disabled in production",
        }


# Save reference to FastAPI app (for testing/debugging)
fastapi_app = create_app()

# Wrap FastAPI inside Socket.IO ASGIApp - this becomes the final ASGI app
# Client connects to: ws://host/socket.io/?EIO=4&transport=websocket
app = get_asgi_app(fastapi_app.state.sio, fastapi_app)
