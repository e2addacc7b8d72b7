"""
Aggregation Engine

Reads the metrics cache for one tenant and window and builds the dashboard
payload: summary, per-platform totals and campaigns, per-country P&L,
campaign detail per country, daily time series and prorated custom costs.

Reads never call third-party APIs. The only exception is the first-load
bootstrap: a tenant with an empty cache gets one synchronous sync first.
"""
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from adprofit.config import get_settings
from adprofit.models.metrics import DailyCountryMetric, CampaignMetric
from adprofit.services.custom_cost_service import CustomCostService
from adprofit.services.subscription_service import get_limits, PlanLimits
from adprofit.services.sync_window import has_cached_rows
from adprofit.utils.helpers import money, safe_divide, utc_today
from adprofit.utils.logger import log

settings = get_settings()

COUNTRY_NAMES = {
    "NO": "Norway", "SE": "Sweden", "US": "United States", "GB": "United Kingdom",
    "DE": "Germany", "FR": "France", "ES": "Spain", "IT": "Italy", "NL": "Netherlands",
    "PL": "Poland", "DK": "Denmark", "FI": "Finland", "CA": "Canada", "AU": "Australia",
}


def _roas(revenue, spend) -> float:
    return round(safe_divide(revenue, spend), 2)


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def clamp_to_retention(
    start: date, limits: PlanLimits, today: date
) -> tuple:
    """
    Move start forward to the plan's retention floor.

    Returns:
        (effective_start, dataRetentionLimit payload or None)
    """
    if limits.data_retention_days is None:
        return start, None

    floor = today - timedelta(days=limits.data_retention_days)
    if start >= floor:
        return start, None

    return floor, {
        "days": limits.data_retention_days,
        "requestedStart": start.isoformat(),
        "effectiveStart": floor.isoformat(),
    }


class AggregationService:
    """
    Builds dashboard payloads from the metrics cache.

    Usage:
        service = AggregationService(db)
        payload = await service.aggregate(tenant_id, start, end)
    """

    def __init__(self, db: Session, sync_service=None, today: Optional[date] = None):
        self.db = db
        self.sync_service = sync_service
        self.today = today

    async def aggregate(
        self,
        tenant_id: int,
        start: date,
        end: date,
        bootstrap: bool = True,
    ) -> Dict[str, Any]:
        """
        Full dashboard payload for [start, end].

        Args:
            tenant_id: Data owner (already resolved from the acting tenant)
            start: Requested first day (inclusive)
            end: Last day (inclusive)
            bootstrap: Sync an empty cache before reading

        Raises:
            SQLAlchemy errors from the cache queries (custom cost errors degrade)
        """
        if bootstrap:
            await self._bootstrap(tenant_id)

        today = self.today or utc_today()
        limits = get_limits(self.db, tenant_id)
        start, retention = clamp_to_retention(start, limits, today)
        if retention:
            log.info(
                f"Clamped metrics start for tenant {tenant_id} from "
                f"{retention['requestedStart']} to {retention['effectiveStart']} "
                f"({limits.data_retention_days}-day retention)"
            )

        self._begin_snapshot()
        try:
            countries = self._countries(tenant_id, start, end)
            platforms, country_campaigns, campaign_spend = self._campaigns(
                tenant_id, start, end, gated=not limits.campaign_pl
            )
            country_spend_by_platform = self._country_spend_by_platform(tenant_id, start, end)
            time_series = self._time_series(tenant_id, start, end)
        finally:
            # Release the read snapshot
            self.db.commit()

        for platform, spend in country_spend_by_platform.items():
            entry = platforms.setdefault(
                platform, {"totalSpend": 0.0, "campaigns": [], "gated": not limits.campaign_pl}
            )
            entry["totalSpend"] = max(entry["totalSpend"], money(spend))

        country_spend = sum((_dec(c["spend"]) for c in countries), Decimal("0"))
        total_spend = max(country_spend, campaign_spend)
        unattributed = total_spend - country_spend
        total_revenue = sum((_dec(c["revenue"]) for c in countries), Decimal("0"))
        total_purchases = sum(c["purchases"] for c in countries)
        total_profit = total_revenue - total_spend

        base_metrics = {
            "revenue": float(total_revenue),
            "profit": float(total_profit),
            "total_ad_spend": float(total_spend),
        }
        for platform, entry in platforms.items():
            base_metrics[f"{platform}_spend"] = entry["totalSpend"]

        costs = self._custom_costs(tenant_id, start, end, base_metrics)
        custom_total = _dec(costs["total"])

        summary = {
            "totalSpend": money(total_spend),
            "totalRevenue": money(total_revenue),
            "totalProfit": money(total_profit),
            "roas": _roas(total_revenue, total_spend),
            "totalPurchases": total_purchases,
            "cpa": round(safe_divide(total_spend, total_purchases), 2),
            "customCosts": money(custom_total),
            "netProfit": money(total_profit - custom_total),
        }

        return {
            "summary": summary,
            "platforms": platforms,
            "countries": countries,
            "countryCampaigns": country_campaigns,
            "timeSeries": time_series,
            "customCostsTotal": money(custom_total),
            "customCostsBreakdown": costs["breakdown"],
            "dataRetentionLimit": retention,
            "unattributedSpend": money(unattributed),
            "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
        }

    async def time_series(self, tenant_id: int, start: date, end: date) -> List[Dict[str, Any]]:
        """Daily spend/revenue/profit only (chart range), retention-clamped."""
        limits = get_limits(self.db, tenant_id)
        start, _ = clamp_to_retention(start, limits, self.today or utc_today())
        self._begin_snapshot()
        try:
            return self._time_series(tenant_id, start, end)
        finally:
            self.db.commit()

    async def _bootstrap(self, tenant_id: int):
        if self.sync_service is None or has_cached_rows(self.db, tenant_id):
            return

        log.info(f"Empty metrics cache for tenant {tenant_id}, running first sync before read")
        try:
            await self.sync_service.sync_tenant(tenant_id)
        except Exception as e:
            log.warning(f"Bootstrap sync failed for tenant {tenant_id}, reading cache as-is: {e}")
        finally:
            # Drop the pre-sync read transaction so the new rows are visible
            self.db.commit()

    def _begin_snapshot(self):
        """Start a transaction that sees one consistent state of the cache."""
        self.db.commit()
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            self.db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        elif dialect == "sqlite":
            # pysqlite only opens a transaction before writes
            self.db.execute(text("BEGIN"))

    def _countries(self, tenant_id: int, start: date, end: date) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                DailyCountryMetric.country_code,
                func.sum(DailyCountryMetric.spend),
                func.sum(DailyCountryMetric.revenue),
                func.sum(DailyCountryMetric.purchases),
            )
            .filter(
                DailyCountryMetric.tenant_id == tenant_id,
                DailyCountryMetric.date >= start,
                DailyCountryMetric.date <= end,
            )
            .group_by(DailyCountryMetric.country_code)
            .all()
        )

        countries = []
        for code, spend, revenue, purchases in rows:
            spend, revenue = _dec(spend), _dec(revenue)
            countries.append({
                "code": code,
                "name": COUNTRY_NAMES.get(code, code),
                "spend": money(spend),
                "revenue": money(revenue),
                "profit": money(revenue - spend),
                "roas": _roas(revenue, spend),
                "purchases": int(purchases or 0),
            })

        countries.sort(key=lambda c: (-c["spend"], -c["revenue"], c["code"]))
        return countries

    def _country_spend_by_platform(self, tenant_id: int, start: date, end: date) -> Dict[str, Decimal]:
        rows = (
            self.db.query(DailyCountryMetric.platform, func.sum(DailyCountryMetric.spend))
            .filter(
                DailyCountryMetric.tenant_id == tenant_id,
                DailyCountryMetric.date >= start,
                DailyCountryMetric.date <= end,
            )
            .group_by(DailyCountryMetric.platform)
            .all()
        )
        return {platform: _dec(spend) for platform, spend in rows if _dec(spend) > 0}

    def _campaigns(self, tenant_id: int, start: date, end: date, gated: bool):
        """
        Campaign-level detail.

        Returns:
            (platforms, countryCampaigns, campaign-summed spend). Campaign lists
            are emptied when gated; platform totals are not.
        """
        rows = (
            self.db.query(
                CampaignMetric.country_code,
                CampaignMetric.platform,
                CampaignMetric.campaign_id,
                func.max(CampaignMetric.campaign_name),
                func.sum(CampaignMetric.spend),
                func.sum(CampaignMetric.revenue),
                func.sum(CampaignMetric.impressions),
                func.sum(CampaignMetric.clicks),
                func.sum(CampaignMetric.purchases),
            )
            .filter(
                CampaignMetric.tenant_id == tenant_id,
                CampaignMetric.date >= start,
                CampaignMetric.date <= end,
            )
            .group_by(CampaignMetric.country_code, CampaignMetric.platform, CampaignMetric.campaign_id)
            .all()
        )

        by_campaign: Dict[tuple, Dict[str, Any]] = {}
        country_campaigns: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        platform_spend: Dict[str, Decimal] = defaultdict(Decimal)
        total = Decimal("0")

        for country, platform, campaign_id, name, spend, revenue, impressions, clicks, purchases in rows:
            spend, revenue = _dec(spend), _dec(revenue)
            total += spend
            platform_spend[platform] += spend

            agg = by_campaign.setdefault((platform, campaign_id), {
                "name": name or campaign_id,
                "spend": Decimal("0"),
                "revenue": Decimal("0"),
                "impressions": 0,
                "clicks": 0,
                "purchases": 0,
            })
            agg["spend"] += spend
            agg["revenue"] += revenue
            agg["impressions"] += int(impressions or 0)
            agg["clicks"] += int(clicks or 0)
            agg["purchases"] += int(purchases or 0)

            if country and not gated:
                country_campaigns[country].append({
                    "campaign": name or campaign_id,
                    "campaignId": campaign_id,
                    "platform": platform,
                    "spend": money(spend),
                    "revenue": money(revenue),
                })

        platforms: Dict[str, Dict[str, Any]] = {}
        for platform, spend in platform_spend.items():
            platforms[platform] = {"totalSpend": money(spend), "campaigns": [], "gated": gated}

        if not gated:
            for (platform, campaign_id), agg in by_campaign.items():
                platforms[platform]["campaigns"].append({
                    "campaignId": campaign_id,
                    "campaign": agg["name"],
                    "spend": money(agg["spend"]),
                    "revenue": money(agg["revenue"]),
                    "profit": money(agg["revenue"] - agg["spend"]),
                    "roas": _roas(agg["revenue"], agg["spend"]),
                    "impressions": agg["impressions"],
                    "clicks": agg["clicks"],
                    "purchases": agg["purchases"],
                })
            for entry in platforms.values():
                entry["campaigns"].sort(key=lambda c: -c["spend"])
            for items in country_campaigns.values():
                items.sort(key=lambda c: -c["spend"])

        return platforms, dict(country_campaigns), total

    def _time_series(self, tenant_id: int, start: date, end: date) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                DailyCountryMetric.date,
                func.sum(DailyCountryMetric.spend),
                func.sum(DailyCountryMetric.revenue),
            )
            .filter(
                DailyCountryMetric.tenant_id == tenant_id,
                DailyCountryMetric.date >= start,
                DailyCountryMetric.date <= end,
            )
            .group_by(DailyCountryMetric.date)
            .order_by(DailyCountryMetric.date)
            .all()
        )
        return [
            {
                "date": day.isoformat(),
                "spend": money(spend),
                "revenue": money(revenue),
                "profit": money(_dec(revenue) - _dec(spend)),
            }
            for day, spend, revenue in rows
        ]

    def _custom_costs(self, tenant_id: int, start: date, end: date, base_metrics: Dict[str, float]) -> Dict:
        if not settings.enable_custom_costs:
            return {"total": 0.0, "breakdown": []}
        try:
            return CustomCostService(self.db).prorate(tenant_id, start, end, base_metrics)
        except (OperationalError, ProgrammingError) as e:
            self.db.rollback()
            log.warning(f"Custom costs unavailable for tenant {tenant_id}, treating as zero: {e}")
            return {"total": 0.0, "breakdown": []}
