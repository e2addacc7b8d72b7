"""
Source adapter row normalization and retry classification tests.

Guards against:
1. Lower-case or malformed country codes reaching the cache
2. PostHog revenue rows being misread between list and dict result shapes
3. Campaign ids going missing (TikTok 'unknown', Meta name fallback)
4. Auth failures being retried like transient errors
5. Transient transport failures surfacing without a retry
6. NaN or infinite amounts reaching the cache
7. PostHog settings saved with camelCase keys being ignored
"""
import asyncio
from datetime import date
from decimal import Decimal

import aiohttp
import pytest

from adprofit.connectors import default_adapters
from adprofit.connectors.base import SourceAdapter, SourceAdapterError, normalize_country_code, to_date, to_decimal
from adprofit.connectors.meta import MetaAdapter
from adprofit.connectors.posthog import PostHogAdapter
from adprofit.connectors.tiktok import TikTokAdapter
from adprofit.utils.retry import is_retryable_error

DEFAULT_DAY = date(2026, 3, 15)


def test_normalize_country_code():
    assert normalize_country_code("us") == "US"
    assert normalize_country_code(" gb ") == "GB"
    assert normalize_country_code("USA") == "US"
    assert normalize_country_code("") is None
    assert normalize_country_code("1") is None
    assert normalize_country_code(None) is None


def test_to_date_falls_back_to_default():
    assert to_date("2026-03-01 00:00:00", DEFAULT_DAY) == date(2026, 3, 1)
    assert to_date(None, DEFAULT_DAY) == DEFAULT_DAY
    assert to_date("not a date", DEFAULT_DAY) == DEFAULT_DAY


def test_to_decimal_rejects_non_finite():
    assert to_decimal("12.5") == Decimal("12.5")
    assert to_decimal("NaN") == Decimal("0")
    assert to_decimal("Infinity") == Decimal("0")
    assert to_decimal(float("-inf")) == Decimal("0")
    assert to_decimal("abc") == Decimal("0")


def test_posthog_options_accept_both_key_styles():
    assert PostHogAdapter.query_options({"posthogHost": "https://eu.posthog.com/", "purchaseEvent": "order_paid"}) == (
        "https://eu.posthog.com", "order_paid",
    )
    assert PostHogAdapter.query_options({"posthog_host": "https://ph.example.com", "purchase_event": "buy"}) == (
        "https://ph.example.com", "buy",
    )
    assert PostHogAdapter.query_options({}) == ("https://app.posthog.com", "rc_initial_purchase")


def test_tiktok_parse_row():
    row = TikTokAdapter().parse_row({
        "dimensions": {"campaign_id": "171", "country_code": "us", "stat_time_day": "2026-03-01 00:00:00"},
        "metrics": {"spend": "12.34", "impressions": "1000", "clicks": "12", "campaign_name": "Launch"},
    }, DEFAULT_DAY)

    assert row.date == date(2026, 3, 1)
    assert row.country_code == "US"
    assert row.campaign_id == "171"
    assert row.campaign_name == "Launch"
    assert row.spend == Decimal("12.34")
    assert (row.impressions, row.clicks) == (1000, 12)


def test_tiktok_missing_campaign_is_unknown():
    row = TikTokAdapter().parse_row({"dimensions": {}, "metrics": {"spend": "1"}}, DEFAULT_DAY)
    assert row.campaign_id == "unknown"
    assert row.date == DEFAULT_DAY


def test_meta_campaign_falls_back_to_name():
    row = MetaAdapter().parse_row(
        {"campaign_name": "Retarget", "country": "no", "spend": "5.5", "date_start": "2026-03-02"},
        DEFAULT_DAY,
    )
    assert row.campaign_id == "Retarget"
    assert row.country_code == "NO"
    assert row.spend == Decimal("5.5")


def test_meta_nameless_campaign():
    row = MetaAdapter().parse_row({"spend": "1"}, DEFAULT_DAY)
    assert row.campaign_id == "Unknown Campaign"
    assert row.country_code is None


def test_posthog_list_row():
    row = PostHogAdapter().parse_row(["us", "2026-03-01", 79.99, 3], DEFAULT_DAY)
    assert row.country_code == "US"
    assert row.revenue == Decimal("79.99")
    assert row.purchases == 3
    assert row.campaign_id is None


def test_posthog_dict_row():
    row = PostHogAdapter().parse_row(
        {"country_code": "SE", "date": "2026-03-01", "revenue": "10", "purchases": "1"}, DEFAULT_DAY
    )
    assert row.country_code == "SE"
    assert row.revenue == Decimal("10")


def test_posthog_row_without_country_is_dropped():
    assert PostHogAdapter().parse_row([None, "2026-03-01", 10, 1], DEFAULT_DAY) is None
    assert PostHogAdapter().parse_row(["US", "2026-03-01"], DEFAULT_DAY) is None


def test_default_adapters_cover_platforms():
    adapters = default_adapters()
    assert set(adapters) == {"tiktok", "meta", "posthog"}
    assert adapters["posthog"].is_revenue_source is True


def test_retry_classification():
    assert is_retryable_error(SourceAdapterError("meta", "slow down", status=429)) is True
    assert is_retryable_error(SourceAdapterError("meta", "upstream", status=503)) is True
    assert is_retryable_error(SourceAdapterError("meta", "expired token", status=401)) is False
    assert is_retryable_error(TimeoutError()) is True
    assert is_retryable_error(ValueError("bad payload")) is False


class _FlakyAdapter(SourceAdapter):
    platform = "flaky"
    RETRY_BASE_DELAY = 0.0
    RETRY_MAX_DELAY = 0.0

    def __init__(self, failures):
        super().__init__()
        self.failures = list(failures)
        self.attempts = 0

    async def fetch_raw(self, credentials, account_id, start, end, options):
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        return []

    def parse_row(self, raw, default_date):
        return None


def test_transient_failures_are_retried():
    adapter = _FlakyAdapter([aiohttp.ClientConnectionError("reset"), SourceAdapterError("flaky", "busy", status=503)])
    rows = asyncio.run(adapter.fetch("token", "acct", DEFAULT_DAY, DEFAULT_DAY))
    assert rows == []
    assert adapter.attempts == 3


def test_auth_failure_is_not_retried():
    adapter = _FlakyAdapter([SourceAdapterError("flaky", "denied", status=401)])
    with pytest.raises(SourceAdapterError):
        asyncio.run(adapter.fetch("token", "acct", DEFAULT_DAY, DEFAULT_DAY))
    assert adapter.attempts == 1


def test_exhausted_transport_errors_become_adapter_errors():
    adapter = _FlakyAdapter([asyncio.TimeoutError()] * 3)
    with pytest.raises(SourceAdapterError):
        asyncio.run(adapter.fetch("token", "acct", DEFAULT_DAY, DEFAULT_DAY))
    assert adapter.attempts == 3
