"""
Meta (Facebook/Instagram) Ads adapter

Insights at campaign level, broken down by country, one row per day.
"""
from datetime import date
from typing import Any, Dict, List, Optional
import json

import aiohttp

from adprofit.connectors.base import (
    SourceAdapter, MetricRow,
    normalize_country_code, to_decimal, to_int, to_date, settings,
)


class MetaAdapter(SourceAdapter):
    platform = "meta"

    def __init__(self, base_url: Optional[str] = None, api_version: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.meta_api_base_url).rstrip("/")
        self.api_version = api_version or settings.meta_api_version

    async def fetch_raw(
        self,
        credentials: str,
        account_id: str,
        start: date,
        end: date,
        options: Dict[str, Any],
    ) -> List[Any]:
        if not str(account_id).startswith("act_"):
            account_id = f"act_{account_id}"

        rows: List[Any] = []
        url = f"{self.base_url}/{self.api_version}/{account_id}/insights"
        params: Optional[Dict[str, Any]] = {
            "access_token": credentials,
            "fields": "campaign_id,campaign_name,spend,impressions,clicks",
            "time_range": json.dumps({"since": start.isoformat(), "until": end.isoformat()}),
            "time_increment": 1,
            "level": "campaign",
            "breakdowns": "country",
            "limit": 500,
        }

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            while url:
                payload = await self._request_json(session, "GET", url, params=params)
                rows.extend(payload.get("data") or [])
                # paging.next already carries every query parameter
                url = (payload.get("paging") or {}).get("next")
                params = None

        return rows

    def parse_row(self, raw: Any, default_date: date) -> Optional[MetricRow]:
        if not isinstance(raw, dict):
            return None
        campaign_name = raw.get("campaign_name") or "Unknown Campaign"

        return MetricRow(
            date=to_date(raw.get("date_start"), default_date),
            country_code=normalize_country_code(raw.get("country")),
            campaign_id=str(raw.get("campaign_id") or campaign_name),
            campaign_name=campaign_name,
            spend=to_decimal(raw.get("spend")),
            impressions=to_int(raw.get("impressions")),
            clicks=to_int(raw.get("clicks")),
        )
