"""
AdProfit Sync & Aggregation Service
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from adprofit.config import get_settings
from adprofit.utils.logger import log
from adprofit import __version__

# Import routers
from adprofit.api import health, sync, metrics

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from adprofit.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for the periodic full sync
    scheduler_started = False
    if settings.enable_scheduler:
        try:
            from adprofit.scheduler import start_scheduler
            start_scheduler()
            scheduler_started = True
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if scheduler_started:
        from adprofit.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Ad spend and revenue P&L by country, platform and campaign

    - Syncs TikTok and Meta ad spend plus PostHog revenue into a normalized cache
    - Incremental 3-day refresh every few hours, 30-day backfill on first sync
    - Dashboard aggregation with plan-based retention and campaign gating
    - Custom costs prorated over the selected date range
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Gzip compression for dashboard payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(sync.router)
app.include_router(metrics.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "trigger_sync": "POST /sync",
            "sync_status": "GET /sync/status",
            "metrics": "GET /metrics",
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "adprofit.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
