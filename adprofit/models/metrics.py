"""
Normalized metrics cache

Two wide tables rebuilt window-by-window by the cache merge:
- metrics_cache: daily totals per country and platform
- campaign_metrics: daily totals per campaign, country and platform
"""
from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, Numeric, UniqueConstraint, Index
from datetime import datetime

from adprofit.models.base import Base


class DailyCountryMetric(Base):
    """
    Country-level daily cache

    Values are summed across all raw rows (campaigns) that map to the same
    (tenant, country, date, platform) within one sync batch.
    """
    __tablename__ = "metrics_cache"
    __table_args__ = (
        UniqueConstraint("tenant_id", "country_code", "date", "platform", name="uq_metrics_cache_key"),
        Index("ix_metrics_cache_tenant_platform_date", "tenant_id", "platform", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    country_code = Column(String(2), nullable=False)
    date = Column(Date, nullable=False)
    platform = Column(String, nullable=False)

    spend = Column(Numeric(12, 2), default=0, nullable=False)
    impressions = Column(BigInteger, default=0, nullable=False)
    clicks = Column(BigInteger, default=0, nullable=False)
    revenue = Column(Numeric(12, 2), default=0, nullable=False)
    purchases = Column(Integer, default=0, nullable=False)

    cached_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DailyCountryMetric {self.tenant_id} {self.platform} {self.country_code} {self.date}>"


class CampaignMetric(Base):
    """
    Campaign-level daily detail

    country_code is '' for rows without a country breakdown.
    """
    __tablename__ = "campaign_metrics"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "platform", "campaign_id", "country_code", "date",
            name="uq_campaign_metrics_key"
        ),
        Index("ix_campaign_metrics_tenant_platform_date", "tenant_id", "platform", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    platform = Column(String, nullable=False)
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=True)
    country_code = Column(String(2), nullable=False, default="")
    date = Column(Date, nullable=False)

    spend = Column(Numeric(12, 2), default=0, nullable=False)
    impressions = Column(BigInteger, default=0, nullable=False)
    clicks = Column(BigInteger, default=0, nullable=False)
    revenue = Column(Numeric(12, 2), default=0, nullable=False)
    purchases = Column(Integer, default=0, nullable=False)

    cached_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<CampaignMetric {self.tenant_id} {self.platform} {self.campaign_id} {self.date}>"
