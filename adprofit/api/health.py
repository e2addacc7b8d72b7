"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from adprofit.config import get_settings
from adprofit import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "scheduler": settings.enable_scheduler,
            "custom_costs": settings.enable_custom_costs,
        },
        "sync": {
            "interval_hours": settings.sync_interval_hours,
            "lock_stale_minutes": settings.sync_lock_stale_minutes,
            "incremental_days": settings.sync_incremental_days,
            "backfill_days": settings.sync_backfill_days,
        },
        "timestamp": datetime.utcnow().isoformat()
    }
