"""
Sync window calculation

First sync of a (tenant, platform) backfills 30 days; once any cached row
exists, each sync refetches only the last 3 days. A gap longer than the
incremental window is not backfilled.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from adprofit.config import get_settings
from adprofit.models.metrics import DailyCountryMetric, CampaignMetric
from adprofit.utils.helpers import utc_today

settings = get_settings()


@dataclass(frozen=True)
class SyncWindow:
    """Inclusive date range fetched and replaced by one sync."""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def has_cached_rows(db: Session, tenant_id: int, platform: Optional[str] = None) -> bool:
    """True if the tenant (optionally: one platform) has any cached metric row."""
    country_q = db.query(DailyCountryMetric.id).filter(DailyCountryMetric.tenant_id == tenant_id)
    campaign_q = db.query(CampaignMetric.id).filter(CampaignMetric.tenant_id == tenant_id)
    if platform:
        country_q = country_q.filter(DailyCountryMetric.platform == platform)
        campaign_q = campaign_q.filter(CampaignMetric.platform == platform)

    return bool(
        db.query(country_q.exists()).scalar()
        or db.query(campaign_q.exists()).scalar()
    )


def compute_sync_window(
    db: Session,
    tenant_id: int,
    platform: str,
    today: Optional[date] = None,
) -> SyncWindow:
    """
    Decide which days to (re)fetch for a tenant + platform.

    Args:
        db: Database session
        tenant_id: Tenant whose cache is inspected
        platform: Platform key (tiktok, meta, posthog)
        today: Override for the current UTC day (tests)

    Returns:
        SyncWindow ending today
    """
    end = today or utc_today()
    if has_cached_rows(db, tenant_id, platform):
        days_back = settings.sync_incremental_days
    else:
        days_back = settings.sync_backfill_days
    return SyncWindow(start=end - timedelta(days=days_back), end=end)
