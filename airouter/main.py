"""
Main FastAPI application entry point.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from airouter import __version__
from airouter.api.middleware import setup_middleware
from airouter.api.routes import admin, chat
from airouter.core.cache import RedisCache
from airouter.core.config import settings
from airouter.core.database import close_db, init_db
from airouter.core.logger import get_logger
from airouter.services.health_check import HealthCheckService, start_health_check_service
from airouter.services.router import RoutingService
from airouter.services.store import SqlProviderStore

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Builds the routing service once per process unless one was injected,
    and runs active health probing in the background.
    """
    logger.info("Starting AI provider router", environment=settings.app_env)

    cache: Optional[RedisCache] = None
    owns_services = getattr(app.state, "routing", None) is None

    if owns_services:
        try:
            await init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error("Failed to initialize database", error=str(e), exc_info=True)
            raise

        cache = RedisCache()
        await cache.connect()
        app.state.routing = RoutingService.create(
            SqlProviderStore(),
            cache=cache if cache.available else None
        )
        app.state.health_checks = HealthCheckService(app.state.routing)

    health_check_task = None
    if owns_services and settings.health_check_enabled:
        health_check_task = asyncio.create_task(
            start_health_check_service(app.state.health_checks)
        )
        logger.info("Health check service started")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down AI provider router")

    if health_check_task is not None:
        health_check_task.cancel()
        try:
            await health_check_task
        except asyncio.CancelledError:
            logger.info("Health check service stopped")

    if cache is not None:
        await cache.disconnect()
    if owns_services:
        await close_db()


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    routing: Optional[RoutingService] = None,
    health_checks: Optional[HealthCheckService] = None
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        routing: Pre-built routing service (tests, embedding)
        health_checks: Pre-built health check service

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="Multi-provider AI routing with health tracking and failover",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan
    )

    if routing is not None:
        app.state.routing = routing
        app.state.health_checks = health_checks or HealthCheckService(routing)

    setup_middleware(app)
    app.include_router(admin.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")

    @app.get("/health", tags=["root"])
    @app.get("/healthz", tags=["root"])
    async def health_check():
        """Liveness endpoint for load balancers."""
        return {"status": "healthy", "service": settings.app_name}

    @app.get("/version", tags=["root"])
    async def version():
        return {"version": __version__, "environment": settings.app_env}

    return app


# ============================================================================
# Development Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "airouter.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
