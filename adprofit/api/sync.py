"""
Metrics sync endpoints
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from adprofit.api.deps import get_acting_tenant, get_data_owner, TEAM_OWNER_DOWNGRADED
from adprofit.models.base import get_db
from adprofit.models.tenant import AD_PLATFORMS, REVENUE_PLATFORMS
from adprofit.services.subscription_service import get_limits
from adprofit.services.sync_lock import SyncLockManager
from adprofit.services.sync_service import (
    SyncInProgressError, SyncService, get_sync_service, next_allowed_sync, reset_platform,
)
from adprofit.services.team_service import resolve_owner
from adprofit.utils.logger import log

router = APIRouter(prefix="/sync", tags=["sync"])

SYNC_PLATFORMS = AD_PLATFORMS + REVENUE_PLATFORMS


async def _run_sync_tenant(sync_service: SyncService, tenant_id: int):
    """Background task: sync one tenant."""
    try:
        results = await sync_service.sync_tenant(tenant_id)
        statuses = {p: r.status for p, r in results.items()}
        log.info(f"Background sync for tenant {tenant_id} finished: {statuses}")
    except Exception as e:
        log.error(f"Background sync error for tenant {tenant_id}: {str(e)}")


@router.post("", status_code=202)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    reset: Optional[str] = Query(None, description="Platform whose cache is cleared before syncing"),
    acting_tenant: int = Depends(get_acting_tenant),
    db: Session = Depends(get_db),
    sync_service: SyncService = Depends(get_sync_service),
):
    """
    Start a sync of all connected platforms in the background.
    Poll GET /sync/status for progress.

    Example: POST /sync?tenant_id=12&reset=posthog
    """
    owner = resolve_owner(db, acting_tenant)
    if owner is None:
        raise HTTPException(status_code=403, detail=TEAM_OWNER_DOWNGRADED)
    if owner != acting_tenant:
        raise HTTPException(
            status_code=403,
            detail={"error": "owner_only", "message": "Only the team owner can trigger a sync."},
        )

    if reset is not None:
        if reset not in SYNC_PLATFORMS:
            raise HTTPException(status_code=400, detail=f"Unknown platform: {reset}")
        try:
            reset_platform(db, owner, reset)
        except SyncInProgressError:
            raise HTTPException(
                status_code=409,
                detail={
                    "error": "sync_in_progress",
                    "message": f"A {reset} sync is running. Try the reset again when it finishes.",
                },
            )
    else:
        next_at = next_allowed_sync(db, owner, get_limits(db, owner))
        if next_at is not None:
            raise HTTPException(
                status_code=429,
                detail={
                    "error": "sync_cooldown",
                    "message": "Your plan allows syncing less often. Try again later.",
                    "nextSyncAt": next_at.isoformat(),
                },
            )

    background_tasks.add_task(_run_sync_tenant, sync_service, owner)
    return {
        "message": "Sync started in background",
        "tenant_id": owner,
        "reset": reset,
        "check_progress": "/sync/status",
    }


@router.get("/status")
def get_sync_status(
    owner: int = Depends(get_data_owner),
    db: Session = Depends(get_db),
):
    """Per-platform sync state of the data owner"""
    return SyncLockManager(db).get_status(owner)
