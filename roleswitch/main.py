"""RoleSwitch API Server - Main Entry Point"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roleswitch.api.middleware import RequestLoggingMiddleware
from roleswitch.api.routes import analytics, data, health, roles, sessions
from roleswitch.api.routes import settings as settings_router
from roleswitch.core.config import Settings, get_settings
from roleswitch.core.exceptions import RoleSwitchError
from roleswitch.core.logging import get_logger, log_error, setup_logging
from roleswitch.services.container import create_container

logger = get_logger(__name__)


def _cors_headers(request: Request) -> dict[str, str]:
    origin = request.headers.get("origin", "")
    if not origin:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
    }


def create_app(
    settings: Settings | None = None,
    *,
    scheduler: Any = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (environment by default)
        scheduler: Timer scheduler override, used by tests to drive time
        clock: Clock override, used by tests to drive time
    """
    settings = settings or get_settings()

    setup_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        json_logs=settings.json_logs or settings.environment == "production",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info(
            "Starting RoleSwitch API Server",
            extra={
                "event_type": "startup",
                "environment": settings.environment,
                "debug": settings.debug,
            },
        )
        logger.info(f"CORS origins: {settings.allowed_origins}")

        container = await create_container(settings, scheduler=scheduler, clock=clock)
        app.state.container = container

        logger.info("=== SERVER STARTUP COMPLETE - READY TO ACCEPT REQUESTS ===")
        yield

        logger.info(
            "Shutting down RoleSwitch API Server",
            extra={"event_type": "shutdown"},
        )
        await container.shutdown()

    app = FastAPI(
        title="RoleSwitch API",
        description="Role tracking with session locks, transition windows and time analytics",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware are processed in REVERSE order of addition
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware - MUST be last to add so it processes FIRST
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(roles.router, prefix="/api/v1/roles", tags=["Roles"])
    app.include_router(sessions.router, prefix="/api/v1/session", tags=["Session"])
    app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(settings_router.router, prefix="/api/v1/settings", tags=["Settings"])
    app.include_router(data.router, prefix="/api/v1/data", tags=["Data"])

    @app.exception_handler(RoleSwitchError)
    async def roleswitch_error_handler(request: Request, exc: RoleSwitchError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        logger.info(
            f"Request rejected: {exc.code}",
            extra={
                "event_type": "domain_error",
                "code": exc.code,
                "path": request.url.path,
                "detail": exc.message,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=_cors_headers(request),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler with full error logging."""
        log_error(
            logger,
            "Unhandled exception",
            error=exc,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
            headers=_cors_headers(request),
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint for basic connectivity check."""
        return {"status": "ok", "service": "roleswitch-api"}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Push session, state, timer, event, role and settings changes to the client."""
        connections = websocket.app.state.container.connections
        engine = websocket.app.state.container.engine

        await websocket.accept()
        connections.connect(websocket)
        logger.info(
            "WebSocket connected",
            extra={
                "event_type": "websocket_connected",
                "total_connections": len(connections.active_connections),
            },
        )

        try:
            # Late subscribers get no replay, so send the current snapshot once
            current = engine.get_current_session()
            await websocket.send_json({
                "type": "snapshot",
                "data": {
                    "session": current.model_dump(mode="json") if current else None,
                    "state": engine.get_state().model_dump(mode="json"),
                },
            })
            while True:
                text = await websocket.receive_text()
                if text == "ping":
                    await websocket.send_json({"type": "pong", "data": None})
        except WebSocketDisconnect:
            logger.info(
                "WebSocket disconnected",
                extra={
                    "event_type": "websocket_disconnected",
                    "total_connections": len(connections.active_connections) - 1,
                },
            )
        except Exception as e:
            log_error(
                logger,
                "WebSocket error",
                error=e,
                extra={"event_type": "websocket_error"},
            )
        finally:
            connections.disconnect(websocket)

    return app


app = create_app()
