"""
PostHog revenue adapter

Runs a HogQL query summing purchase revenue by country and day. Revenue
rows have no campaign dimension and only feed the country-level cache.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from adprofit.connectors.base import (
    SourceAdapter, MetricRow,
    normalize_country_code, to_decimal, to_int, to_date, settings,
)

# {event}, {start}, {end_exclusive} are HogQL placeholders bound from "values"
REVENUE_QUERY = """
SELECT
  properties.country_code AS country,
  toDate(timestamp) AS date,
  sum(toFloat(properties.revenue)) AS total_revenue,
  count(*) AS purchases
FROM events
WHERE
  event = {event}
  AND timestamp >= toDateTime({start})
  AND timestamp < toDateTime({end_exclusive})
GROUP BY country, date
ORDER BY date DESC
"""


class PostHogAdapter(SourceAdapter):
    platform = "posthog"
    is_revenue_source = True

    @staticmethod
    def query_options(options: Dict[str, Any]) -> Tuple[str, str]:
        """Host and purchase event from connection settings (snake_case or camelCase keys)."""
        host = options.get("posthog_host") or options.get("posthogHost") or settings.posthog_default_host
        event = options.get("purchase_event") or options.get("purchaseEvent") or settings.posthog_purchase_event
        return host.rstrip("/"), event

    async def fetch_raw(
        self,
        credentials: str,
        account_id: str,
        start: date,
        end: date,
        options: Dict[str, Any],
    ) -> List[Any]:
        host, event = self.query_options(options)

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            payload = await self._request_json(
                session,
                "POST",
                f"{host}/api/projects/{account_id}/query/",
                headers={
                    "Authorization": f"Bearer {credentials}",
                    "Content-Type": "application/json",
                },
                json={
                    "query": {
                        "kind": "HogQLQuery",
                        "query": REVENUE_QUERY,
                        "values": {
                            "event": event,
                            "start": start.isoformat(),
                            "end_exclusive": (end + timedelta(days=1)).isoformat(),
                        },
                    }
                },
            )

        return payload.get("results") or []

    def parse_row(self, raw: Any, default_date: date) -> Optional[MetricRow]:
        # Results come back as positional lists or, from older APIs, dicts
        if isinstance(raw, (list, tuple)):
            if len(raw) < 4:
                return None
            country, day, revenue, purchases = raw[0], raw[1], raw[2], raw[3]
        elif isinstance(raw, dict):
            country = raw.get("country") or raw.get("country_code")
            day = raw.get("date")
            revenue = raw.get("total_revenue", raw.get("revenue"))
            purchases = raw.get("purchases")
        else:
            return None

        code = normalize_country_code(country)
        if not code:
            return None

        return MetricRow(
            date=to_date(day, default_date),
            country_code=code,
            revenue=to_decimal(revenue),
            purchases=to_int(purchases),
        )
