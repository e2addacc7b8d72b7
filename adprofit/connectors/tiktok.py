"""
TikTok Ads adapter

Pulls the integrated report at campaign level broken down by country and
day (spend, impressions, clicks).
"""
from datetime import date
from typing import Any, Dict, List, Optional
import json

import aiohttp

from adprofit.connectors.base import (
    SourceAdapter, SourceAdapterError, MetricRow,
    normalize_country_code, to_decimal, to_int, to_date, settings,
)

# TikTok business API codes that mean the token is no longer usable
AUTH_ERROR_CODES = {40001, 40002, 40100, 40104, 40105}


class TikTokAdapter(SourceAdapter):
    platform = "tiktok"

    PAGE_SIZE = 1000

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.tiktok_api_base_url).rstrip("/")

    async def fetch_raw(
        self,
        credentials: str,
        account_id: str,
        start: date,
        end: date,
        options: Dict[str, Any],
    ) -> List[Any]:
        rows: List[Any] = []
        page = 1
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            while True:
                payload = await self._request_json(
                    session,
                    "GET",
                    f"{self.base_url}/report/integrated/get/",
                    headers={"Access-Token": credentials},
                    params={
                        "advertiser_id": account_id,
                        "report_type": "BASIC",
                        "data_level": "AUCTION_CAMPAIGN",
                        "dimensions": json.dumps(["campaign_id", "country_code", "stat_time_day"]),
                        "metrics": json.dumps(["spend", "impressions", "clicks", "campaign_name"]),
                        "start_date": start.isoformat(),
                        "end_date": end.isoformat(),
                        "page": page,
                        "page_size": self.PAGE_SIZE,
                    },
                )

                code = payload.get("code", 0)
                if code:
                    status = 401 if code in AUTH_ERROR_CODES else 400
                    raise SourceAdapterError(self.platform, payload.get("message", "API error"), status=status)

                data = payload.get("data") or {}
                rows.extend(data.get("list") or [])

                total_pages = (data.get("page_info") or {}).get("total_page", 1) or 1
                if page >= total_pages:
                    break
                page += 1

        return rows

    def parse_row(self, raw: Any, default_date: date) -> Optional[MetricRow]:
        if not isinstance(raw, dict):
            return None
        dims = raw.get("dimensions") or {}
        metrics = raw.get("metrics") or raw

        return MetricRow(
            date=to_date(dims.get("stat_time_day") or raw.get("stat_time_day"), default_date),
            country_code=normalize_country_code(
                dims.get("country_code") or raw.get("country_code") or raw.get("country")
            ),
            campaign_id=str(dims.get("campaign_id") or raw.get("campaign_id") or "unknown"),
            campaign_name=metrics.get("campaign_name"),
            spend=to_decimal(metrics.get("spend")),
            impressions=to_int(metrics.get("impressions")),
            clicks=to_int(metrics.get("clicks")),
        )
