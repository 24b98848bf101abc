"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.analytics import AnalyticsRecorder, FunnelTracker, UserAnalytics
from app.config import settings
from app.database import init_db, close_db
from app.logging_config import configure_logging
from app.services.exceptions import ServiceError

from app.api.interests import router as interests_router
from app.api.notifications import router as notifications_router
from app.api.analytics import router as analytics_router
from app.api.admin.sweeps import router as sweeps_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    # Startup
    configure_logging()
    logger.info(f"Starting up {settings.app_name}...")

    if settings.is_development:
        await init_db()

    recorder = AnalyticsRecorder()
    await recorder.init()
    app.state.analytics = recorder
    app.state.funnels = FunnelTracker(recorder)
    app.state.user_analytics = UserAnalytics(recorder, app.state.funnels)

    yield

    # Shutdown
    await recorder.shutdown()
    await close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title="Vivaha Connect",
    description="Matrimony interests, notifications and analytics",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    recorder = getattr(request.app.state, "analytics", None)
    if recorder is not None:
        recorder.track_error(exc, context={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


# CORS middleware
origins = []
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(
    interests_router,
    prefix="/interests",
    tags=["interests"],
)
app.include_router(
    notifications_router,
    prefix="/notifications",
    tags=["notifications"],
)
app.include_router(
    analytics_router,
    prefix="/analytics",
    tags=["analytics"],
)

# Register admin routes
app.include_router(
    sweeps_router,
    prefix="/admin",
    tags=["admin"],
)
