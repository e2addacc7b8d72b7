"""
Custom cost definitions

User-defined costs (tools, salaries, payment fees...) folded into the
dashboard P&L. Fixed costs carry an amount; variable costs a percentage of
a base metric.
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey
from datetime import datetime

from adprofit.models.base import Base


COST_TYPES = ["fixed", "variable"]
REPEAT_INTERVALS = ["daily", "weekly", "monthly"]
BASE_METRICS = [
    "revenue",
    "profit",
    "total_ad_spend",
    "google_ads_spend",
    "meta_spend",
    "tiktok_spend",
    "linkedin_spend",
]
CURRENCIES = ["USD", "EUR", "GBP", "NOK"]


class CustomCost(Base):
    __tablename__ = "custom_costs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    name = Column(String, nullable=False)
    category = Column(String, nullable=True, index=True)
    cost_type = Column(String, nullable=False, default="fixed")
    currency = Column(String(3), nullable=False, default="USD")

    # fixed
    amount = Column(Numeric(12, 2), nullable=True)
    # variable
    percentage = Column(Numeric(6, 3), nullable=True)
    base_metric = Column(String, nullable=True)

    repeat = Column(Boolean, default=False, nullable=False)
    repeat_interval = Column(String, nullable=True)  # daily, weekly, monthly

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # None = open-ended

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CustomCost {self.name} ({self.cost_type}) {self.start_date}..{self.end_date}>"
