"""
Cache Merge Engine

Replaces one (tenant, platform, window) slice of the metrics cache with a
freshly fetched batch, inside a single transaction:

1. delete the window's rows from metrics_cache and campaign_metrics
2. sum every row into its (country, date) bucket for metrics_cache
3. keep the last row per (campaign, country, date) for campaign_metrics

Revenue rows carry no campaign and only reach metrics_cache. Rows without a
country only reach campaign_metrics (country ''). Rows dated outside the
window are dropped, since nothing outside the window was cleared for them.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from sqlalchemy.orm import Session

from adprofit.connectors.base import MetricRow, normalize_country_code
from adprofit.models.metrics import DailyCountryMetric, CampaignMetric
from adprofit.services.sync_window import SyncWindow
from adprofit.utils.logger import log


@dataclass
class _Totals:
    spend: Decimal = field(default_factory=lambda: Decimal("0"))
    impressions: int = 0
    clicks: int = 0
    revenue: Decimal = field(default_factory=lambda: Decimal("0"))
    purchases: int = 0

    def add(self, row: MetricRow):
        self.spend += row.spend
        self.impressions += row.impressions
        self.clicks += row.clicks
        self.revenue += row.revenue
        self.purchases += row.purchases


class CacheMergeEngine:
    def __init__(self, db: Session):
        self.db = db

    def merge(
        self,
        tenant_id: int,
        platform: str,
        window: SyncWindow,
        rows: Iterable[MetricRow],
    ) -> int:
        """
        Atomically replace the window's cached rows for one platform.

        Args:
            tenant_id: Tenant owning the cache
            platform: Platform key
            window: Fetched date range (inclusive)
            rows: Normalized adapter rows

        Returns:
            Number of rows merged (rows outside the window excluded)

        Raises:
            Any database error, after rolling the whole replacement back
        """
        country_totals: Dict[Tuple[str, date], _Totals] = {}
        campaign_rows: Dict[Tuple[str, str, date], Tuple[MetricRow, str]] = {}
        merged = 0
        dropped = 0

        for row in rows:
            if not window.contains(row.date):
                dropped += 1
                continue
            merged += 1

            country = normalize_country_code(row.country_code)
            if country:
                country_totals.setdefault((country, row.date), _Totals()).add(row)

            if row.campaign_id is not None:
                # Last write wins per exact key
                campaign_rows[(row.campaign_id, country or "", row.date)] = (row, country or "")

        if dropped:
            log.warning(
                f"Dropped {dropped} {platform} rows outside window "
                f"{window.start}..{window.end} for tenant {tenant_id}"
            )

        now = datetime.utcnow()
        try:
            self.db.query(DailyCountryMetric).filter(
                DailyCountryMetric.tenant_id == tenant_id,
                DailyCountryMetric.platform == platform,
                DailyCountryMetric.date >= window.start,
                DailyCountryMetric.date <= window.end,
            ).delete(synchronize_session=False)

            self.db.query(CampaignMetric).filter(
                CampaignMetric.tenant_id == tenant_id,
                CampaignMetric.platform == platform,
                CampaignMetric.date >= window.start,
                CampaignMetric.date <= window.end,
            ).delete(synchronize_session=False)

            self.db.add_all([
                DailyCountryMetric(
                    tenant_id=tenant_id,
                    platform=platform,
                    country_code=country,
                    date=day,
                    spend=totals.spend,
                    impressions=totals.impressions,
                    clicks=totals.clicks,
                    revenue=totals.revenue,
                    purchases=totals.purchases,
                    cached_at=now,
                )
                for (country, day), totals in country_totals.items()
            ])

            self.db.add_all([
                CampaignMetric(
                    tenant_id=tenant_id,
                    platform=platform,
                    campaign_id=campaign_id,
                    campaign_name=row.campaign_name,
                    country_code=country,
                    date=day,
                    spend=row.spend,
                    impressions=row.impressions,
                    clicks=row.clicks,
                    revenue=row.revenue,
                    purchases=row.purchases,
                    cached_at=now,
                )
                for (campaign_id, _, day), (row, country) in campaign_rows.items()
            ])

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info(
            f"Merged {merged} {platform} rows for tenant {tenant_id} "
            f"({len(country_totals)} country-days, {len(campaign_rows)} campaign-days, "
            f"window {window.start}..{window.end})"
        )
        return merged
