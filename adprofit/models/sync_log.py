"""
Sync lock / status ledger

One row per (tenant, platform). The row is both the lease lock that keeps
a single fetch+merge in flight and the status shown on the dashboard.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint

from adprofit.models.base import Base


SYNC_STATUSES = ["idle", "syncing", "done", "error"]


class SyncLog(Base):
    __tablename__ = "sync_log"
    __table_args__ = (
        UniqueConstraint("tenant_id", "platform", name="uq_sync_log_tenant_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    platform = Column(String, nullable=False)

    status = Column(String, nullable=False, default="idle", index=True)
    started_at = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)  # Last successful release
    error_message = Column(Text, nullable=True)
    records_synced = Column(Integer, default=0)

    def __repr__(self):
        return f"<SyncLog {self.tenant_id}/{self.platform} {self.status}>"
