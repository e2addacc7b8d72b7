"""
Subscription lookup

Resolves a tenant's plan and its limits. Trials are expired lazily on read.
Tenants without an active subscription get the starter limits.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from adprofit.config import PLAN_LIMITS, DEFAULT_PLAN
from adprofit.models.tenant import Subscription, ACTIVE_SUBSCRIPTION_STATUSES
from adprofit.utils.logger import log


@dataclass(frozen=True)
class PlanLimits:
    max_ad_platforms: Optional[int]  # None = unlimited
    sync_interval_hours: Optional[int]
    data_retention_days: Optional[int]  # None = unlimited
    campaign_pl: bool
    team_access: bool
    api_access: bool

    @classmethod
    def for_plan(cls, plan: Optional[str]) -> "PlanLimits":
        return cls(**PLAN_LIMITS.get(plan or DEFAULT_PLAN, PLAN_LIMITS[DEFAULT_PLAN]))

    def to_dict(self) -> dict:
        return {
            "maxAdPlatforms": self.max_ad_platforms,
            "syncIntervalHours": self.sync_interval_hours,
            "dataRetentionDays": self.data_retention_days,
            "campaignPL": self.campaign_pl,
            "teamAccess": self.team_access,
            "apiAccess": self.api_access,
        }


@dataclass(frozen=True)
class SubscriptionInfo:
    plan: Optional[str]
    status: str
    is_active: bool
    limits: PlanLimits
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


def get_subscription(db: Session, tenant_id: int, now: Optional[datetime] = None) -> SubscriptionInfo:
    """Current subscription state of a tenant."""
    sub = db.query(Subscription).filter(Subscription.tenant_id == tenant_id).first()
    if sub is None:
        return SubscriptionInfo(
            plan=None,
            status="none",
            is_active=False,
            limits=PlanLimits.for_plan(DEFAULT_PLAN),
        )

    now = now or datetime.utcnow()
    if sub.status == "trialing" and sub.trial_end and sub.trial_end < now:
        sub.status = "expired"
        sub.updated_at = now
        db.commit()
        log.info(f"Trial expired for tenant {tenant_id} (plan {sub.plan})")

    is_active = sub.status in ACTIVE_SUBSCRIPTION_STATUSES
    return SubscriptionInfo(
        plan=sub.plan,
        status=sub.status,
        is_active=is_active,
        limits=PlanLimits.for_plan(sub.plan if is_active else DEFAULT_PLAN),
        trial_end=sub.trial_end,
        current_period_end=sub.current_period_end,
    )


def get_limits(db: Session, tenant_id: int) -> PlanLimits:
    return get_subscription(db, tenant_id).limits
