"""
Sync Lock Manager

Lease lock per (tenant, platform) stored in the sync_log table, so every
process instance (scheduler, manual trigger, dashboard bootstrap) shares it.

acquire() is one conditional upsert: it wins when there is no row, when the
row is not 'syncing', or when the 'syncing' lease is older than the
staleness threshold. A crashed worker's lease therefore expires from the
next caller's point of view.
"""
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from adprofit.config import get_settings
from adprofit.models.sync_log import SyncLog
from adprofit.utils.logger import log

settings = get_settings()

MAX_ERROR_LENGTH = 500


def _insert_for(db: Session):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


class SyncLockManager:
    def __init__(self, db: Session, stale_minutes: Optional[int] = None):
        self.db = db
        self.stale_after = timedelta(
            minutes=stale_minutes if stale_minutes is not None else settings.sync_lock_stale_minutes
        )

    def acquire(self, tenant_id: int, platform: str, now: Optional[datetime] = None) -> bool:
        """
        Try to take the lease.

        Returns:
            True if this caller now owns the sync, False if another sync is in flight
        """
        now = now or datetime.utcnow()
        stale_before = now - self.stale_after

        insert = _insert_for(self.db)
        stmt = insert(SyncLog).values(
            tenant_id=tenant_id,
            platform=platform,
            status="syncing",
            started_at=now,
            error_message=None,
            records_synced=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "platform"],
            set_={"status": "syncing", "started_at": now, "error_message": None},
            where=or_(
                SyncLog.status != "syncing",
                SyncLog.started_at.is_(None),
                SyncLog.started_at < stale_before,
            ),
        ).returning(SyncLog.id)

        try:
            acquired = self.db.execute(stmt).first() is not None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if acquired:
            log.debug(f"Sync lock acquired for tenant {tenant_id}/{platform}")
        return acquired

    def release(
        self,
        tenant_id: int,
        platform: str,
        success: bool,
        records_synced: int = 0,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ):
        """Mark the lease done (refreshing last_synced_at) or error (keeping the message)."""
        now = now or datetime.utcnow()
        values = {
            SyncLog.status: "done" if success else "error",
            SyncLog.error_message: None if success else (error_message or "Unknown error")[:MAX_ERROR_LENGTH],
            SyncLog.records_synced: records_synced,
        }
        if success:
            values[SyncLog.last_synced_at] = now

        try:
            updated = self.db.query(SyncLog).filter(
                SyncLog.tenant_id == tenant_id,
                SyncLog.platform == platform,
            ).update(values, synchronize_session=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not updated:
            log.warning(f"Released sync lock that did not exist: tenant {tenant_id}/{platform}")

    def get_status(self, tenant_id: int) -> Dict[str, Any]:
        """
        Dashboard sync indicator for one tenant.

        Returns:
            {lastSynced, isSyncing, platforms: {platform: {status, lastSynced, startedAt, error, recordsSynced}}}
        """
        rows = self.db.query(SyncLog).filter(SyncLog.tenant_id == tenant_id).all()

        platforms = {}
        last_synced = None
        is_syncing = False
        for row in rows:
            platforms[row.platform] = {
                "status": row.status,
                "lastSynced": row.last_synced_at.isoformat() if row.last_synced_at else None,
                "startedAt": row.started_at.isoformat() if row.started_at else None,
                "error": row.error_message,
                "recordsSynced": row.records_synced or 0,
            }
            if row.status == "syncing":
                is_syncing = True
            if row.last_synced_at and (last_synced is None or row.last_synced_at > last_synced):
                last_synced = row.last_synced_at

        return {
            "lastSynced": last_synced.isoformat() if last_synced else None,
            "isSyncing": is_syncing,
            "platforms": platforms,
        }

    def last_successful_sync(self, tenant_id: int) -> Optional[datetime]:
        """Most recent last_synced_at across the tenant's platforms whose last run succeeded."""
        rows = self.db.query(SyncLog.last_synced_at).filter(
            SyncLog.tenant_id == tenant_id,
            SyncLog.status == "done",
            SyncLog.last_synced_at.isnot(None),
        ).all()
        return max((r[0] for r in rows), default=None)

    def reset(self, tenant_id: int, platform: str, now: Optional[datetime] = None) -> bool:
        """
        Forget the platform's record (next sync starts from a clean slate).

        A live 'syncing' lease is left in place. Does not commit.

        Returns:
            False if a sync holds the lease, True otherwise
        """
        now = now or datetime.utcnow()
        stale_before = now - self.stale_after
        key = (SyncLog.tenant_id == tenant_id, SyncLog.platform == platform)

        deleted = self.db.query(SyncLog).filter(
            *key,
            or_(
                SyncLog.status != "syncing",
                SyncLog.started_at.is_(None),
                SyncLog.started_at < stale_before,
            ),
        ).delete(synchronize_session=False)
        if deleted:
            return True
        return self.db.query(SyncLog.id).filter(*key).first() is None
