"""
Aggregation tests.

Guards against:
1. Country P&L, ROAS or summary totals drifting from the cached rows
2. Retention floors not being applied (or applied to unlimited plans)
3. Campaign lists leaking to plans without campaign-level P&L
4. Campaign-only spend being dropped or double-counted
5. A missing custom costs table failing the whole dashboard
6. The first dashboard read not bootstrapping an empty cache
7. Dashboard reads on SQLite running outside a transaction
"""
import asyncio
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from adprofit.config import PLAN_LIMITS
from adprofit.connectors.base import MetricRow
from adprofit.models.custom_cost import CustomCost
from adprofit.services import aggregation_service
from adprofit.services.aggregation_service import AggregationService
from adprofit.services.cache_merge import CacheMergeEngine
from adprofit.services.custom_cost_service import CustomCostService
from adprofit.services.sync_window import SyncWindow

from conftest import make_tenant

DAY1 = date(2026, 3, 1)
DAY2 = date(2026, 3, 2)
WINDOW = SyncWindow(start=DAY1, end=DAY2)


def _seed_scenario(db, tenant_id):
    engine = CacheMergeEngine(db)
    engine.merge(tenant_id, "tiktok", WINDOW, [
        MetricRow(date=DAY1, country_code="US", campaign_id="t1", campaign_name="Spring", spend=Decimal("50.00")),
        MetricRow(date=DAY2, country_code="CA", campaign_id="t1", campaign_name="Spring", spend=Decimal("20.00")),
    ])
    engine.merge(tenant_id, "posthog", WINDOW, [
        MetricRow(date=DAY1, country_code="US", revenue=Decimal("80.00"), purchases=2),
    ])


def _aggregate(db, tenant_id, start=DAY1, end=DAY2, today=DAY2, **kwargs):
    return asyncio.run(AggregationService(db, today=today, **kwargs).aggregate(tenant_id, start, end))


def test_end_to_end_country_pnl(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)

    data = _aggregate(db, tenant)

    assert data["summary"]["totalSpend"] == 70.0
    assert data["summary"]["totalRevenue"] == 80.0
    assert data["summary"]["totalProfit"] == 10.0
    assert data["summary"]["totalPurchases"] == 2
    assert data["summary"]["cpa"] == 35.0
    assert data["countries"] == [
        {"code": "US", "name": "United States", "spend": 50.0, "revenue": 80.0,
         "profit": 30.0, "roas": 1.6, "purchases": 2},
        {"code": "CA", "name": "Canada", "spend": 20.0, "revenue": 0.0,
         "profit": -20.0, "roas": 0, "purchases": 0},
    ]
    assert data["unattributedSpend"] == 0.0
    assert data["dataRetentionLimit"] is None


def test_time_series_per_day(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)

    data = _aggregate(db, tenant)

    assert data["timeSeries"] == [
        {"date": "2026-03-01", "spend": 50.0, "revenue": 80.0, "profit": 30.0},
        {"date": "2026-03-02", "spend": 20.0, "revenue": 0.0, "profit": -20.0},
    ]


def test_platform_and_country_campaigns(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)

    data = _aggregate(db, tenant)

    tiktok = data["platforms"]["tiktok"]
    assert tiktok["totalSpend"] == 70.0
    assert tiktok["gated"] is False
    assert [c["campaignId"] for c in tiktok["campaigns"]] == ["t1"]
    assert tiktok["campaigns"][0]["spend"] == 70.0
    assert data["countryCampaigns"]["US"] == [
        {"campaign": "Spring", "campaignId": "t1", "platform": "tiktok", "spend": 50.0, "revenue": 0.0},
    ]
    assert "posthog" not in data["platforms"]


def test_campaign_gating_keeps_totals(db, monkeypatch):
    limits = {plan: dict(values) for plan, values in PLAN_LIMITS.items()}
    limits["starter"]["campaign_pl"] = False
    monkeypatch.setattr("adprofit.services.subscription_service.PLAN_LIMITS", limits)
    tenant = make_tenant(db, plan="starter")
    _seed_scenario(db, tenant)

    data = _aggregate(db, tenant)

    assert data["platforms"]["tiktok"] == {"totalSpend": 70.0, "campaigns": [], "gated": True}
    assert data["countryCampaigns"] == {}
    assert data["summary"]["totalSpend"] == 70.0


def test_retention_clamp(db, monkeypatch):
    limits = {plan: dict(values) for plan, values in PLAN_LIMITS.items()}
    limits["growth"]["data_retention_days"] = 90
    monkeypatch.setattr("adprofit.services.subscription_service.PLAN_LIMITS", limits)
    tenant = make_tenant(db, plan="growth")
    today = date(2026, 6, 1)
    floor = today - timedelta(days=90)
    old_day = floor - timedelta(days=5)
    CacheMergeEngine(db).merge(tenant, "tiktok", SyncWindow(old_day, floor), [
        MetricRow(date=old_day, country_code="US", campaign_id="c", spend=Decimal("100.00")),
        MetricRow(date=floor, country_code="US", campaign_id="c", spend=Decimal("10.00")),
    ])

    data = _aggregate(db, tenant, start=date(2026, 1, 1), end=today, today=today)

    assert data["dataRetentionLimit"] == {
        "days": 90,
        "requestedStart": "2026-01-01",
        "effectiveStart": floor.isoformat(),
    }
    assert data["summary"]["totalSpend"] == 10.0
    assert data["dateRange"]["start"] == floor.isoformat()


def test_unlimited_retention_never_clamps(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)

    data = _aggregate(db, tenant, start=date(2020, 1, 1), today=date(2026, 6, 1))

    assert data["dataRetentionLimit"] is None
    assert data["summary"]["totalSpend"] == 70.0


def test_campaign_only_spend_is_unattributed(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)
    CacheMergeEngine(db).merge(tenant, "meta", WINDOW, [
        MetricRow(date=DAY1, country_code=None, campaign_id="m1", campaign_name="Retarget", spend=Decimal("30.00")),
    ])

    data = _aggregate(db, tenant)

    assert data["summary"]["totalSpend"] == 100.0
    assert data["unattributedSpend"] == 30.0
    assert data["platforms"]["meta"]["totalSpend"] == 30.0
    assert sum(c["spend"] for c in data["countries"]) == 70.0


def test_custom_costs_reduce_net_profit(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)
    db.add(CustomCost(
        tenant_id=tenant, name="Fees", cost_type="variable", percentage=Decimal("10"),
        base_metric="revenue", start_date=date(2026, 1, 1),
    ))
    db.commit()

    data = _aggregate(db, tenant)

    assert data["customCostsTotal"] == 8.0
    assert data["summary"]["customCosts"] == 8.0
    assert data["summary"]["netProfit"] == 2.0
    assert data["customCostsBreakdown"][0]["name"] == "Fees"


def test_custom_cost_failure_degrades_to_zero(db, monkeypatch):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)

    def missing_table(*args, **kwargs):
        raise OperationalError("SELECT * FROM custom_costs", {}, Exception("no such table: custom_costs"))

    monkeypatch.setattr(CustomCostService, "prorate", missing_table)

    data = _aggregate(db, tenant)

    assert data["customCostsTotal"] == 0.0
    assert data["customCostsBreakdown"] == []
    assert data["summary"]["totalSpend"] == 70.0


def test_custom_costs_disabled_by_flag(db, monkeypatch):
    tenant = make_tenant(db, plan="pro")
    db.add(CustomCost(
        tenant_id=tenant, name="Rent", amount=Decimal("100"), start_date=DAY1,
    ))
    db.commit()
    monkeypatch.setattr(aggregation_service.settings, "enable_custom_costs", False)

    data = _aggregate(db, tenant)

    assert data["customCostsTotal"] == 0.0


class _RecordingSync:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def sync_tenant(self, tenant_id):
        self.calls.append(tenant_id)
        if self.fail:
            raise RuntimeError("adapter exploded")
        return {}


def test_empty_cache_bootstraps_a_sync(db):
    tenant = make_tenant(db, plan="pro")
    sync = _RecordingSync()

    data = _aggregate(db, tenant, sync_service=sync)

    assert sync.calls == [tenant]
    assert data["summary"]["totalSpend"] == 0.0


def test_failed_bootstrap_still_returns_payload(db):
    tenant = make_tenant(db, plan="pro")

    data = _aggregate(db, tenant, sync_service=_RecordingSync(fail=True))

    assert data["countries"] == []


def test_warm_cache_skips_bootstrap(db):
    tenant = make_tenant(db, plan="pro")
    _seed_scenario(db, tenant)
    sync = _RecordingSync()

    _aggregate(db, tenant, sync_service=sync)

    assert sync.calls == []


def test_read_block_runs_in_one_transaction(db):
    service = AggregationService(db)

    service._begin_snapshot()
    try:
        raw = db.connection().connection.dbapi_connection
        assert raw.in_transaction is True
    finally:
        db.commit()
