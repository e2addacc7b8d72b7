"""Database models for the AdProfit sync pipeline"""

from adprofit.models.tenant import (
    Tenant,
    PlatformConnection,
    Subscription,
    Team,
    TeamMember,
)

from adprofit.models.metrics import (
    DailyCountryMetric,
    CampaignMetric,
)

from adprofit.models.sync_log import SyncLog

from adprofit.models.custom_cost import CustomCost

__all__ = [
    "Tenant",
    "PlatformConnection",
    "Subscription",
    "Team",
    "TeamMember",
    "DailyCountryMetric",
    "CampaignMetric",
    "SyncLog",
    "CustomCost",
]
