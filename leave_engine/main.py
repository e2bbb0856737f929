"""Leave Engine — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from leave_engine import __version__
from leave_engine.common.exceptions import register_exception_handlers
from leave_engine.common.rate_limit import limiter
from leave_engine.config import settings
from leave_engine.database import async_session_factory, create_tables, engine
from leave_engine.directory.service import SqlDirectory
from leave_engine.leave.lifecycle import build_lifecycle
from leave_engine.leave.router import router as leave_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    if settings.AUTO_CREATE_TABLES:
        # Local development only; deployed schemas are managed by the DBA
        await create_tables()
        logger.info("Database tables created")
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Leave Engine",
        description="Leave entitlement, validation and approval workflow",
        version=__version__,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One lifecycle per process: it owns the in-process lock registry
    app.state.lifecycle = build_lifecycle(
        async_session_factory,
        directory=SqlDirectory(async_session_factory),
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.ENVIRONMENT,
            "work_week": settings.WORK_WEEK,
        }

    # Register routers
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])

    return app


app = create_app()
