"""
Sync orchestrator tests (fake adapters, real database).

Guards against:
1. One platform's failure cancelling the others
2. A failed fetch truncating the cache without replacement data
3. A held lease not being skipped silently
4. Plan limits letting extra ad platforms sync
5. sync_all stopping at the first failing tenant
6. Platform reset leaving rows or the sync record behind
7. A reset dropping the lease of a sync that is still running
8. Window errors leaving the lease stuck at syncing
9. A failed last run extending the sync cooldown
"""
import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from adprofit.connectors.base import SourceAdapter, SourceAdapterError, MetricRow
from adprofit.models.base import SessionLocal
from adprofit.models.metrics import DailyCountryMetric, CampaignMetric
from adprofit.models.sync_log import SyncLog
from adprofit.models.tenant import PlatformConnection
from adprofit.services.sync_lock import SyncLockManager
from adprofit.services.sync_service import (
    SyncInProgressError, SyncService, next_allowed_sync, reset_platform, select_connections,
)
from adprofit.services.subscription_service import PlanLimits
from adprofit.utils.helpers import utc_today

from conftest import make_tenant, connect, hours_ago


class FakeAdapter(SourceAdapter):
    """Returns canned rows (or raises) without any network I/O."""

    RETRY_MAX_ATTEMPTS = 1

    def __init__(self, platform, rows=None, error=None):
        super().__init__()
        self.platform = platform
        self.rows = rows or []
        self.error = error
        self.calls = []

    async def fetch_raw(self, credentials, account_id, start, end, options):
        self.calls.append((credentials, account_id, start, end))
        if self.error:
            raise self.error
        return self.rows

    def parse_row(self, raw, default_date):
        return raw


def _spend(day, country, amount, campaign="c1"):
    return MetricRow(date=day, country_code=country, campaign_id=campaign, spend=Decimal(amount))


def _service(**adapters):
    return SyncService(session_factory=SessionLocal, adapters=adapters, tenant_concurrency=2)


def _status(db, tenant_id, platform):
    db.expire_all()
    return db.query(SyncLog).filter_by(tenant_id=tenant_id, platform=platform).one()


def test_successful_sync_fills_cache_and_releases(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    today = utc_today()
    tiktok = FakeAdapter("tiktok", rows=[_spend(today, "US", "50.00")])

    results = asyncio.run(_service(tiktok=tiktok).sync_tenant(tenant))

    assert results["tiktok"].status == "done"
    assert results["tiktok"].records_synced == 1
    _, _, start, end = tiktok.calls[0]
    assert (start, end) == (today - timedelta(days=30), today)
    assert db.query(DailyCountryMetric).filter_by(tenant_id=tenant).count() == 1
    row = _status(db, tenant, "tiktok")
    assert row.status == "done"
    assert row.records_synced == 1


def test_second_sync_is_incremental(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    today = utc_today()
    tiktok = FakeAdapter("tiktok", rows=[_spend(today, "US", "50.00")])
    service = _service(tiktok=tiktok)

    asyncio.run(service.sync_tenant(tenant))
    asyncio.run(service.sync_tenant(tenant))

    _, _, start, _ = tiktok.calls[1]
    assert start == today - timedelta(days=3)


def test_failure_is_isolated_per_platform(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    connect(db, tenant, "posthog")
    today = utc_today()
    tiktok = FakeAdapter("tiktok", error=SourceAdapterError("tiktok", "token revoked", status=401))
    posthog = FakeAdapter("posthog", rows=[
        MetricRow(date=today, country_code="US", revenue=Decimal("80.00"), purchases=1),
    ])

    results = asyncio.run(_service(tiktok=tiktok, posthog=posthog).sync_tenant(tenant))

    assert results["tiktok"].status == "error"
    assert results["posthog"].status == "done"
    assert "token revoked" in _status(db, tenant, "tiktok").error_message
    assert _status(db, tenant, "posthog").status == "done"


def test_failed_fetch_keeps_existing_cache(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    today = utc_today()
    asyncio.run(_service(tiktok=FakeAdapter("tiktok", rows=[_spend(today, "US", "50.00")])).sync_tenant(tenant))

    failing = FakeAdapter("tiktok", error=SourceAdapterError("tiktok", "HTTP 500", status=500))
    asyncio.run(_service(tiktok=failing).sync_tenant(tenant))

    db.expire_all()
    assert db.query(DailyCountryMetric).filter_by(tenant_id=tenant).count() == 1


def test_held_lease_skips_platform(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    SyncLockManager(db).acquire(tenant, "tiktok")
    tiktok = FakeAdapter("tiktok", rows=[_spend(utc_today(), "US", "50.00")])

    results = asyncio.run(_service(tiktok=tiktok).sync_tenant(tenant))

    assert results["tiktok"].status == "locked"
    assert tiktok.calls == []
    assert _status(db, tenant, "tiktok").status == "syncing"


def test_concurrent_syncs_fetch_once(db):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    tiktok = FakeAdapter("tiktok", rows=[_spend(utc_today(), "US", "50.00")])
    service = _service(tiktok=tiktok)

    async def both():
        return await asyncio.gather(service.sync_tenant(tenant), service.sync_tenant(tenant))

    first, second = asyncio.run(both())

    assert sorted([first["tiktok"].status, second["tiktok"].status]) == ["done", "locked"]
    assert len(tiktok.calls) == 1


def test_platform_without_adapter_is_skipped(db):
    tenant = make_tenant(db)
    connect(db, tenant, "linkedin")
    results = asyncio.run(_service().sync_tenant(tenant))
    assert results["linkedin"].status == "skipped"


def test_starter_plan_syncs_oldest_ad_platform_only(db):
    tenant = make_tenant(db, plan="starter")
    connect(db, tenant, "meta", created_at=datetime(2026, 1, 1))
    connect(db, tenant, "tiktok", created_at=datetime(2026, 2, 1))
    connect(db, tenant, "posthog", created_at=datetime(2026, 3, 1))
    meta, tiktok, posthog = FakeAdapter("meta"), FakeAdapter("tiktok"), FakeAdapter("posthog")

    results = asyncio.run(_service(meta=meta, tiktok=tiktok, posthog=posthog).sync_tenant(tenant))

    assert set(results) == {"meta", "posthog"}
    assert tiktok.calls == []


def test_select_connections_unlimited():
    conns = [PlatformConnection(platform=p, created_at=datetime(2026, 1, i + 1)) for i, p in enumerate(["meta", "tiktok"])]
    assert len(select_connections(conns, PlanLimits.for_plan("pro"))) == 2


def test_sync_all_continues_past_failing_tenant(db):
    good = make_tenant(db)
    bad = make_tenant(db)
    connect(db, good, "tiktok")
    connect(db, bad, "tiktok")
    service = _service(tiktok=FakeAdapter("tiktok", rows=[_spend(utc_today(), "US", "5.00")]))

    original = service.sync_tenant

    async def flaky(tenant_id):
        if tenant_id == bad:
            raise RuntimeError("database went away")
        return await original(tenant_id)

    service.sync_tenant = flaky
    result = asyncio.run(service.sync_all())

    assert result == {"tenants": 2, "failed": 1}
    assert _status(db, good, "tiktok").status == "done"


def test_reset_platform_clears_cache_and_record(db):
    tenant = make_tenant(db)
    connect(db, tenant, "posthog")
    connect(db, tenant, "tiktok")
    today = utc_today()
    service = _service(
        posthog=FakeAdapter("posthog", rows=[MetricRow(date=today, country_code="US", revenue=Decimal("9"))]),
        tiktok=FakeAdapter("tiktok", rows=[_spend(today, "US", "5.00")]),
    )
    asyncio.run(service.sync_tenant(tenant))

    reset_platform(db, tenant, "posthog")

    assert db.query(DailyCountryMetric).filter_by(tenant_id=tenant, platform="posthog").count() == 0
    assert db.query(SyncLog).filter_by(tenant_id=tenant, platform="posthog").count() == 0
    assert db.query(DailyCountryMetric).filter_by(tenant_id=tenant, platform="tiktok").count() == 1
    assert db.query(CampaignMetric).filter_by(tenant_id=tenant, platform="tiktok").count() == 1


def test_cooldown_after_recent_sync(db):
    tenant = make_tenant(db, plan="starter")
    lock = SyncLockManager(db)
    lock.acquire(tenant, "tiktok")
    lock.release(tenant, "tiktok", success=True, now=hours_ago(5))

    next_at = next_allowed_sync(db, tenant, PlanLimits.for_plan("starter"))
    assert next_at is not None
    assert next_at > datetime.utcnow() + timedelta(hours=18)

    assert next_allowed_sync(db, tenant, PlanLimits.for_plan("pro")) is None


def test_no_cooldown_without_previous_sync(db):
    tenant = make_tenant(db, plan="starter")
    assert next_allowed_sync(db, tenant, PlanLimits.for_plan("starter")) is None


def test_window_dates_reported(db):
    tenant = make_tenant(db)
    connect(db, tenant, "meta")
    results = asyncio.run(_service(meta=FakeAdapter("meta")).sync_tenant(tenant))
    assert results["meta"].status == "done"
    assert results["meta"].window_end == utc_today().isoformat()


def test_reset_refused_while_platform_syncs(db):
    tenant = make_tenant(db)
    connect(db, tenant, "posthog")
    today = utc_today()
    service = _service(
        posthog=FakeAdapter("posthog", rows=[MetricRow(date=today, country_code="US", revenue=Decimal("9"))]),
    )
    asyncio.run(service.sync_tenant(tenant))
    SyncLockManager(db).acquire(tenant, "posthog")

    with pytest.raises(SyncInProgressError):
        reset_platform(db, tenant, "posthog")

    assert db.query(DailyCountryMetric).filter_by(tenant_id=tenant, platform="posthog").count() == 1
    assert _status(db, tenant, "posthog").status == "syncing"
    assert SyncLockManager(db).acquire(tenant, "posthog") is False


def test_window_failure_releases_lease_with_error(db, monkeypatch):
    tenant = make_tenant(db)
    connect(db, tenant, "tiktok")
    tiktok = FakeAdapter("tiktok")

    def broken_window(*args, **kwargs):
        raise RuntimeError("metrics_cache unavailable")

    monkeypatch.setattr("adprofit.services.sync_service.compute_sync_window", broken_window)

    results = asyncio.run(_service(tiktok=tiktok).sync_tenant(tenant))

    assert results["tiktok"].status == "error"
    assert results["tiktok"].window_start is None
    assert tiktok.calls == []
    row = _status(db, tenant, "tiktok")
    assert row.status == "error"
    assert "metrics_cache unavailable" in row.error_message


def test_failed_last_run_allows_immediate_retry(db):
    tenant = make_tenant(db, plan="growth")
    lock = SyncLockManager(db)
    lock.acquire(tenant, "tiktok")
    lock.release(tenant, "tiktok", success=True, now=hours_ago(1))
    lock.acquire(tenant, "tiktok")
    lock.release(tenant, "tiktok", success=False, error_message="HTTP 500")

    assert next_allowed_sync(db, tenant, PlanLimits.for_plan("growth")) is None
