"""
Custom Cost Proration

Computes how much of each custom cost falls into a date window:

- variable: percentage of a base metric already computed for the window
- fixed, one-time: amount spread evenly over the cost's own span, times
  the overlapping days (a one-time cost without end date is a single day)
- fixed, daily: amount per overlapping day
- fixed, weekly: amount / 7 per overlapping day
- fixed, monthly: for each calendar month touched, amount / days-in-month
  per overlapping day of that month

Amounts stay in the cost's own currency.
"""
import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from adprofit.models.custom_cost import CustomCost
from adprofit.utils.helpers import to_money
from adprofit.utils.logger import log

ZERO = Decimal("0")


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def overlap(
    start: date, end: date, other_start: date, other_end: Optional[date]
) -> Optional[Tuple[date, date]]:
    """Intersection of [start, end] and [other_start, other_end] (None end = open)."""
    lo = max(start, other_start)
    hi = end if other_end is None else min(end, other_end)
    if lo > hi:
        return None
    return lo, hi


def days_between(start: date, end: date) -> int:
    """Inclusive day count."""
    return (end - start).days + 1


def monthly_prorated(amount: Decimal, start: date, end: date) -> Decimal:
    """Spread a monthly amount over [start, end] using each month's real length."""
    total = ZERO
    cursor = start
    while cursor <= end:
        month_days = calendar.monthrange(cursor.year, cursor.month)[1]
        month_end = date(cursor.year, cursor.month, month_days)
        span_end = min(end, month_end)
        total += amount / month_days * days_between(cursor, span_end)
        cursor = span_end + timedelta(days=1)
    return total


def frequency_of(cost: CustomCost) -> str:
    if cost.cost_type == "variable":
        return "variable"
    if not cost.repeat:
        return "one_time"
    return cost.repeat_interval or "monthly"


def cost_contribution(
    cost: CustomCost,
    start: date,
    end: date,
    base_metrics: Dict[str, float],
) -> Decimal:
    """
    Contribution of one cost to [start, end], rounded to cents.

    Args:
        cost: Cost definition
        start: Window start (inclusive)
        end: Window end (inclusive)
        base_metrics: Window totals keyed by base metric name
            (revenue, profit, total_ad_spend, <platform>_spend)
    """
    frequency = frequency_of(cost)

    if frequency == "one_time":
        cost_end = cost.end_date or cost.start_date
        span = overlap(start, end, cost.start_date, cost_end)
        if span is None:
            return ZERO
        amount = _dec(cost.amount)
        per_day = amount / days_between(cost.start_date, cost_end)
        return to_money(per_day * days_between(*span))

    span = overlap(start, end, cost.start_date, cost.end_date)
    if span is None:
        return ZERO

    if frequency == "variable":
        base_value = _dec(base_metrics.get(cost.base_metric))
        return to_money(_dec(cost.percentage) / 100 * base_value)

    amount = _dec(cost.amount)
    if frequency == "daily":
        return to_money(amount * days_between(*span))
    if frequency == "weekly":
        return to_money(amount / 7 * days_between(*span))
    if frequency == "monthly":
        return to_money(monthly_prorated(amount, *span))

    log.warning(f"Unknown repeat interval {cost.repeat_interval!r} on custom cost {cost.id}")
    return ZERO


class CustomCostService:
    def __init__(self, db: Session):
        self.db = db

    def active_costs(self, tenant_id: int, start: date, end: date) -> List[CustomCost]:
        """Cost definitions whose [start_date, end_date] touches the window."""
        return (
            self.db.query(CustomCost)
            .filter(
                CustomCost.tenant_id == tenant_id,
                CustomCost.start_date <= end,
                or_(CustomCost.end_date.is_(None), CustomCost.end_date >= start),
            )
            .order_by(CustomCost.id)
            .all()
        )

    def prorate(
        self,
        tenant_id: int,
        start: date,
        end: date,
        base_metrics: Optional[Dict[str, float]] = None,
    ) -> Dict:
        """
        Custom costs attributable to [start, end].

        Returns:
            {"total": float, "breakdown": [{id, name, category, costType, frequency,
              currency, amount, configuredAmount, percentage, baseMetric}]}
        """
        base_metrics = base_metrics or {}
        total = ZERO
        breakdown = []

        for cost in self.active_costs(tenant_id, start, end):
            contribution = cost_contribution(cost, start, end, base_metrics)
            if contribution <= 0:
                continue
            total += contribution
            breakdown.append({
                "id": cost.id,
                "name": cost.name,
                "category": cost.category,
                "costType": cost.cost_type,
                "frequency": frequency_of(cost),
                "currency": cost.currency,
                "amount": float(contribution),
                "configuredAmount": float(cost.amount) if cost.amount is not None else None,
                "percentage": float(cost.percentage) if cost.percentage is not None else None,
                "baseMetric": cost.base_metric,
            })

        return {"total": float(to_money(total)), "breakdown": breakdown}
