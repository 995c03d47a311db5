"""Data Pod: FastAPI application entry point."""

import signal
import uuid
from collections.abc import Iterable
from contextlib import asynccontextmanager
from typing import Any

# configure_structlog MUST run before the other datapod imports
# (structlog caches the processor chain on first use).
from datapod.core.config import get_settings as _get_settings_early
from datapod.core.logging import configure_structlog

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog  # noqa: E402
from fastapi import FastAPI, HTTPException, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from datapod.api.routes import api_router  # noqa: E402
from datapod.core.config import get_settings  # noqa: E402
from datapod.core.exceptions import DataPodError  # noqa: E402
from datapod.db.base import close_db, get_session_factory, init_db  # noqa: E402
from datapod.db.redis import close_redis, get_redis, init_redis  # noqa: E402
from datapod.middleware.correlation import get_correlation_id, setup_correlation_middleware  # noqa: E402
from datapod.plugins.manager import Capability, PluginManager  # noqa: E402
from datapod.services.container import ServiceContainer  # noqa: E402

logger = structlog.get_logger(__name__)


def _make_lifespan(container: ServiceContainer | None, plugins: PluginManager):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown. A pre-built container skips DB and Redis setup."""
        app.state.shutting_down = False

        def handle_sigterm(signum, frame):
            app.state.shutting_down = True
            logger.info("sigterm_received", action="health_check_503_draining_connections")

        signal.signal(signal.SIGTERM, handle_sigterm)

        settings = get_settings()
        logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

        owns_connections = container is None
        if owns_connections:
            await init_db()
            logger.info("db_initialized")
            await init_redis()
            logger.info("redis_initialized")
            app.state.redis = get_redis()
            app.state.container = ServiceContainer.build(
                get_session_factory(), redis=app.state.redis, settings=settings, plugins=plugins
            )
        else:
            app.state.container = container
        logger.info("container_ready", executors=len(app.state.container.registry), plugins=len(plugins))

        yield

        logger.info("shutdown_begin")
        if owns_connections:
            await close_redis()
            await close_db()
        logger.info("shutdown_complete")

    return lifespan


def _error_context(request: Request) -> dict[str, Any]:
    return {
        "correlation_id": get_correlation_id(),
        "path": request.url.path,
        "method": request.method,
        "user_id": getattr(request.state, "user_id", None),
    }


async def datapod_exception_handler(request: Request, exc: DataPodError) -> JSONResponse:
    """Map domain errors to their status code with a debug_id.

    4xx errors carry their specific message. 5xx errors are logged in full and
    answered with a generic message.
    """
    debug_id = str(uuid.uuid4())
    if exc.status_code >= 500:
        logger.error(
            "datapod_error",
            debug_id=debug_id,
            code=exc.code,
            error=exc.message,
            context=exc.context,
            **_error_context(request),
        )
        content: dict[str, Any] = {
            "code": exc.code,
            "detail": "The request could not be completed. Please retry.",
            "retryable": exc.retryable,
            "debug_id": debug_id,
        }
    else:
        logger.info("request_rejected", debug_id=debug_id, code=exc.code, error=exc.message, **_error_context(request))
        content = {**exc.to_dict(), "detail": exc.message, "debug_id": debug_id}
    return JSONResponse(status_code=exc.status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException handler with debug_id tracking."""
    debug_id = str(uuid.uuid4())
    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        detail=exc.detail,
        **_error_context(request),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: full traceback in the log, generic 500 to the client."""
    debug_id = str(uuid.uuid4())
    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
        **_error_context(request),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app(container: ServiceContainer | None = None, plugins: Iterable[Any] = ()) -> FastAPI:
    """Create and configure the FastAPI application.

    ``plugins`` are registered before the container is built so their
    executors and routers are part of the app. Passing a ``container`` (tests,
    embedding) skips DB and Redis initialization.
    """
    settings = get_settings()
    manager = container.plugins if container is not None else PluginManager()
    for plugin in plugins:
        manager.register(plugin)
        if container is not None and Capability.EXECUTOR_PROVIDER in plugin.manifest.capabilities:
            # The container is already built; wire this plugin in directly
            plugin.register_executors(container.registry, container.deps)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant event-sourced data backend",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=_make_lifespan(container, manager),
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)

    app.exception_handler(DataPodError)(datapod_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")
    manager.mount_routers(app)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "datapod.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
