"""
Base Source Adapter

Every platform adapter turns one third-party report into normalized
MetricRow objects. Adapters are the only code that talks to third parties.

Contract:
- fetch() returns [] for an empty report, never raises for "no data"
- authentication / transport failures raise SourceAdapterError after retries
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
import asyncio
import time

import aiohttp
from dateutil import parser as date_parser

from adprofit.config import get_settings
from adprofit.utils.logger import log
from adprofit.utils.retry import calculate_backoff, is_retryable_error

settings = get_settings()


class SourceAdapterError(Exception):
    """Authentication or transport failure talking to a platform."""

    def __init__(self, platform: str, message: str, status: Optional[int] = None):
        self.platform = platform
        self.status = status
        super().__init__(f"{platform}: {message}" + (f" (HTTP {status})" if status else ""))


@dataclass
class MetricRow:
    """One normalized report row. Money values are Decimals."""
    date: date
    country_code: Optional[str] = None  # ISO-3166 alpha-2, upper case, or None
    campaign_id: Optional[str] = None  # None for revenue sources
    campaign_name: Optional[str] = None
    spend: Decimal = Decimal("0")
    impressions: int = 0
    clicks: int = 0
    revenue: Decimal = Decimal("0")
    purchases: int = 0


def normalize_country_code(value: Any) -> Optional[str]:
    """Upper-case 2-letter code, or None when absent/unknown."""
    if value is None:
        return None
    code = str(value).strip().upper()[:2]
    if len(code) != 2 or not code.isalpha():
        return None
    return code


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return d if d.is_finite() else Decimal("0")


def to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def to_date(value: Any, default: date) -> date:
    """Parse a report date; rows without a usable date land on ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)[:10]).date()
    except (ValueError, OverflowError):
        log.warning(f"Could not parse report date: {value!r}")
        return default


class SourceAdapter(ABC):
    """Base class for all platform adapters"""

    platform: str = ""
    is_revenue_source: bool = False

    # Retry configuration (can be overridden by subclasses)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 30.0  # seconds

    def __init__(self, timeout_seconds: Optional[int] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.adapter_timeout_seconds)

    async def fetch(
        self,
        credentials: str,
        account_id: str,
        start: date,
        end: date,
        options: Optional[Dict[str, Any]] = None,
    ) -> List[MetricRow]:
        """
        Fetch and normalize report rows for [start, end] (inclusive).

        Args:
            credentials: Platform access token / API key
            account_id: Advertiser, ad account or project id
            start: First day of the window
            end: Last day of the window
            options: Connection settings (e.g. PostHog host / event name)

        Returns:
            Normalized rows (possibly empty)
        """
        options = options or {}
        started = time.time()
        log.info(f"Fetching {self.platform} report for account {account_id} from {start} to {end}")

        raw_rows = await self._with_retry(
            lambda: self.fetch_raw(credentials, account_id, start, end, options)
        )

        rows = []
        for raw in raw_rows or []:
            row = self.parse_row(raw, default_date=end)
            if row is not None:
                rows.append(row)

        log.info(
            f"{self.platform} returned {len(rows)} rows "
            f"({len(raw_rows or [])} raw) in {time.time() - started:.2f}s"
        )
        return rows

    @abstractmethod
    async def fetch_raw(
        self,
        credentials: str,
        account_id: str,
        start: date,
        end: date,
        options: Dict[str, Any],
    ) -> List[Any]:
        """Call the platform API and return its raw report rows."""

    @abstractmethod
    def parse_row(self, raw: Any, default_date: date) -> Optional[MetricRow]:
        """Map one raw report row to a MetricRow (None to drop it)."""

    async def _with_retry(self, operation):
        """Run an async operation, retrying transient failures with backoff."""
        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            try:
                return await operation()
            except SourceAdapterError as e:
                if attempt >= self.RETRY_MAX_ATTEMPTS or not is_retryable_error(e):
                    raise
                error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.RETRY_MAX_ATTEMPTS:
                    raise SourceAdapterError(self.platform, f"transport error: {e}") from e
                error = e

            delay = calculate_backoff(
                attempt,
                base_delay=self.RETRY_BASE_DELAY,
                max_delay=self.RETRY_MAX_DELAY
            )
            log.warning(
                f"{self.platform} fetch attempt {attempt} failed: {error}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    async def _request_json(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        **kwargs,
    ) -> Dict[str, Any]:
        """Perform one HTTP request and decode JSON, raising on HTTP errors."""
        async with session.request(method, url, **kwargs) as response:
            if response.status >= 400:
                body = await response.text()
                raise SourceAdapterError(self.platform, body[:200], status=response.status)
            return await response.json(content_type=None)
