"""
FastAPI main application entry point.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shipyard.api.v1.endpoints import logs_ws
from shipyard.api.v1.router import api_router
from shipyard.core.config import settings
from shipyard.core.database import engine
from shipyard.core.exception_handlers import register_exception_handlers
from shipyard.core.log_channel import log_broadcaster
from shipyard.services.deployment.supervisor import process_supervisor
from shipyard.services.store import persist_log_event

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create scheduler
scheduler = AsyncIOScheduler()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Local deployment orchestrator: builds, runs and supervises project processes",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/openapi.json",
)

# Register domain exception handlers
register_exception_handlers(app)

cors_origins = settings.get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,  # Cache preflight requests for 10 minutes
)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.

    Wires log persistence, brings back projects that were running before the
    last shutdown and schedules the reconciliation sweep.
    """
    log_broadcaster.set_sink(persist_log_event)

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return

    restored = await process_supervisor.restore_running_projects()
    logger.info(f"Startup recovery finished, {len(restored)} projects restored")

    scheduler.add_job(
        process_supervisor.reconcile,
        "interval",
        seconds=settings.RECONCILE_INTERVAL_SECONDS,
        id="reconcile_processes",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, reconciling every {settings.RECONCILE_INTERVAL_SECONDS}s")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.
    """
    if scheduler.running:
        scheduler.shutdown()
    await process_supervisor.shutdown()
    await log_broadcaster.flush()
    await engine.dispose()
    logger.info("Application shutdown complete")


@app.get("/api/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status, database check and process counts
    """
    db_healthy = False
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        db_healthy = True
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")

    overall_status = "healthy" if db_healthy else "unhealthy"

    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": overall_status,
            "components": {
                "database": "healthy" if db_healthy else "unhealthy",
            },
            "running_processes": len(process_supervisor.list_running()),
            "queued_deployments": process_supervisor.queued_deployments,
            "version": settings.APP_VERSION,
        },
    )


# Include API v1 router
app.include_router(api_router, prefix="/api/v1")

# WebSocket log stream
app.include_router(logs_ws.router)


# Root endpoint
@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """
    Root endpoint.

    Returns:
        Welcome message with API documentation link
    """
    return {
        "message": "Shipyard API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/health",
    }
