"""
Sync Orchestrator

Fans a tenant's sync out over all of its connected platforms concurrently:

    acquire lease -> compute window -> adapter fetch -> cache merge -> release

Failures are isolated per platform and recorded on the sync_log row; a
platform whose lease is held elsewhere is skipped silently. sync_all() walks
every tenant with a connection through a bounded pool.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from adprofit.config import get_settings
from adprofit.connectors import SourceAdapter, default_adapters
from adprofit.models.base import SessionLocal
from adprofit.models.metrics import DailyCountryMetric, CampaignMetric
from adprofit.models.tenant import PlatformConnection, AD_PLATFORMS
from adprofit.services.cache_merge import CacheMergeEngine
from adprofit.services.subscription_service import get_subscription, PlanLimits
from adprofit.services.sync_lock import SyncLockManager
from adprofit.services.sync_window import compute_sync_window
from adprofit.utils.cache import clear_for_tenant
from adprofit.utils.logger import log

settings = get_settings()


@dataclass
class PlatformSyncResult:
    """Outcome of one platform's sync attempt"""
    platform: str
    status: str  # done, error, locked, skipped
    records_synced: int = 0
    error_message: Optional[str] = None
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass
class ConnectionSnapshot:
    """Credentials read up front so no session is held across adapter I/O."""
    platform: str
    access_token: str
    account_id: str
    settings: Dict[str, Any] = field(default_factory=dict)


def select_connections(
    connections: List[PlatformConnection], limits: PlanLimits
) -> List[PlatformConnection]:
    """
    Apply the plan's ad platform cap.

    Oldest ad platform connections win; revenue sources are never capped.
    """
    if limits.max_ad_platforms is None:
        return list(connections)

    ordered = sorted(connections, key=lambda c: (c.created_at or datetime.min, c.id or 0))
    selected = []
    ad_count = 0
    for conn in ordered:
        if conn.platform in AD_PLATFORMS:
            if ad_count >= limits.max_ad_platforms:
                continue
            ad_count += 1
        selected.append(conn)
    return selected


class SyncService:
    """Runs tenant syncs against the configured source adapters"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        adapters: Optional[Dict[str, SourceAdapter]] = None,
        tenant_concurrency: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.adapters = adapters if adapters is not None else default_adapters()
        self.tenant_concurrency = tenant_concurrency or settings.sync_tenant_concurrency

    def _load_connections(self, tenant_id: int) -> List[ConnectionSnapshot]:
        db = self.session_factory()
        try:
            connections = db.query(PlatformConnection).filter(
                PlatformConnection.tenant_id == tenant_id
            ).all()
            limits = get_subscription(db, tenant_id).limits
            selected = select_connections(connections, limits)

            skipped = {c.platform for c in connections} - {c.platform for c in selected}
            if skipped:
                log.info(
                    f"Tenant {tenant_id} exceeds its plan's ad platform limit "
                    f"({limits.max_ad_platforms}); not syncing {sorted(skipped)}"
                )

            return [
                ConnectionSnapshot(
                    platform=c.platform,
                    access_token=c.access_token,
                    account_id=c.account_id,
                    settings=dict(c.settings or {}),
                )
                for c in selected
            ]
        finally:
            db.close()

    async def sync_tenant(self, tenant_id: int) -> Dict[str, PlatformSyncResult]:
        """
        Sync every connected platform of a tenant concurrently.

        Returns:
            Per-platform results (informational; callers treat sync as fire-and-forget)
        """
        connections = self._load_connections(tenant_id)
        if not connections:
            log.debug(f"Tenant {tenant_id} has no connected platforms")
            return {}

        log.info(f"Starting sync for tenant {tenant_id}: {[c.platform for c in connections]}")
        outcomes = await asyncio.gather(
            *(self.sync_platform(tenant_id, conn) for conn in connections),
            return_exceptions=True,
        )

        results: Dict[str, PlatformSyncResult] = {}
        for conn, outcome in zip(connections, outcomes):
            if isinstance(outcome, BaseException):
                # Only reachable when recording the outcome itself failed
                log.error(f"Sync bookkeeping failed for tenant {tenant_id}/{conn.platform}: {outcome}")
                results[conn.platform] = PlatformSyncResult(
                    platform=conn.platform, status="error", error_message=str(outcome)
                )
            else:
                results[conn.platform] = outcome

        if any(r.status == "done" for r in results.values()):
            clear_for_tenant(tenant_id)

        summary = ", ".join(f"{p}={r.status}" for p, r in results.items())
        log.info(f"Sync finished for tenant {tenant_id}: {summary}")
        return results

    async def sync_platform(self, tenant_id: int, conn: ConnectionSnapshot) -> PlatformSyncResult:
        """Lease, fetch, merge and release one platform of one tenant."""
        adapter = self.adapters.get(conn.platform)
        if adapter is None:
            log.warning(f"No adapter for platform {conn.platform!r} (tenant {tenant_id})")
            return PlatformSyncResult(platform=conn.platform, status="skipped")

        started = time.time()
        db = self.session_factory()
        try:
            lock = SyncLockManager(db)
            if not lock.acquire(tenant_id, conn.platform):
                log.debug(f"Sync already in progress for tenant {tenant_id}/{conn.platform}, skipping")
                return PlatformSyncResult(platform=conn.platform, status="locked")

            window = None
            try:
                window = compute_sync_window(db, tenant_id, conn.platform)
                db.commit()  # end the read transaction before network I/O

                rows = await adapter.fetch(
                    conn.access_token, conn.account_id, window.start, window.end, conn.settings
                )
                merged = await asyncio.to_thread(
                    self._merge, tenant_id, conn.platform, window, rows
                )
            except Exception as e:
                log.error(f"{conn.platform} sync failed for tenant {tenant_id}: {e}")
                db.rollback()
                lock.release(tenant_id, conn.platform, success=False, error_message=str(e))
                return PlatformSyncResult(
                    platform=conn.platform,
                    status="error",
                    error_message=str(e),
                    window_start=window.start.isoformat() if window else None,
                    window_end=window.end.isoformat() if window else None,
                    duration_seconds=time.time() - started,
                )

            lock.release(tenant_id, conn.platform, success=True, records_synced=merged)
            elapsed = time.time() - started
            log.info(
                f"{conn.platform} sync completed for tenant {tenant_id}: "
                f"{merged} records in {elapsed:.1f}s"
            )
            return PlatformSyncResult(
                platform=conn.platform,
                status="done",
                records_synced=merged,
                window_start=window.start.isoformat(),
                window_end=window.end.isoformat(),
                duration_seconds=elapsed,
            )
        finally:
            db.close()

    def _merge(self, tenant_id, platform, window, rows) -> int:
        # Runs in a worker thread with its own session
        db = self.session_factory()
        try:
            return CacheMergeEngine(db).merge(tenant_id, platform, window, rows)
        finally:
            db.close()

    def tenants_with_connections(self) -> List[int]:
        db = self.session_factory()
        try:
            rows = db.query(PlatformConnection.tenant_id).distinct().order_by(PlatformConnection.tenant_id).all()
            return [r[0] for r in rows]
        finally:
            db.close()

    async def sync_all(self) -> Dict[str, int]:
        """
        Sync every tenant with at least one connection.

        Tenant failures are logged and do not stop the cycle.
        """
        started = time.time()
        tenant_ids = self.tenants_with_connections()
        log.info(f"Starting full sync for {len(tenant_ids)} tenants")

        semaphore = asyncio.Semaphore(self.tenant_concurrency)
        failed = 0

        async def _run(tenant_id: int):
            nonlocal failed
            async with semaphore:
                try:
                    await self.sync_tenant(tenant_id)
                except Exception as e:
                    failed += 1
                    log.error(f"Error syncing tenant {tenant_id}: {e}")

        await asyncio.gather(*(_run(t) for t in tenant_ids))

        log.info(
            f"Full sync complete: {len(tenant_ids) - failed}/{len(tenant_ids)} tenants "
            f"in {time.time() - started:.1f}s"
        )
        return {"tenants": len(tenant_ids), "failed": failed}


def next_allowed_sync(db: Session, tenant_id: int, limits: PlanLimits) -> Optional[datetime]:
    """
    When the plan's sync cooldown ends, or None if a sync may start now.
    """
    if not limits.sync_interval_hours:
        return None
    last = SyncLockManager(db).last_successful_sync(tenant_id)
    if last is None:
        return None
    next_at = last + timedelta(hours=limits.sync_interval_hours)
    return next_at if next_at > datetime.utcnow() else None


class SyncInProgressError(Exception):
    """Raised when a platform cannot be reset because its sync is running"""

    def __init__(self, tenant_id: int, platform: str):
        self.tenant_id = tenant_id
        self.platform = platform
        super().__init__(f"{platform} sync in progress for tenant {tenant_id}")


def reset_platform(db: Session, tenant_id: int, platform: str):
    """
    Drop a platform's cached rows and sync record so the next sync backfills.

    Raises:
        SyncInProgressError: a live lease is held for the platform; nothing is changed
    """
    try:
        if not SyncLockManager(db).reset(tenant_id, platform):
            db.rollback()
            raise SyncInProgressError(tenant_id, platform)
        db.query(DailyCountryMetric).filter(
            DailyCountryMetric.tenant_id == tenant_id,
            DailyCountryMetric.platform == platform,
        ).delete(synchronize_session=False)
        db.query(CampaignMetric).filter(
            CampaignMetric.tenant_id == tenant_id,
            CampaignMetric.platform == platform,
        ).delete(synchronize_session=False)
        db.commit()
    except SyncInProgressError:
        raise
    except Exception:
        db.rollback()
        raise

    clear_for_tenant(tenant_id)
    log.info(f"Cleared {platform} cache for tenant {tenant_id}; next sync runs a full backfill")


@lru_cache()
def get_sync_service() -> SyncService:
    """Process-wide orchestrator used by the API and the scheduler."""
    return SyncService()
