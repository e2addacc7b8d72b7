"""
Dashboard metrics endpoint
"""
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from adprofit.api.deps import get_data_owner
from adprofit.config import get_settings
from adprofit.models.base import get_db
from adprofit.services.aggregation_service import AggregationService
from adprofit.services.sync_service import SyncService, get_sync_service
from adprofit.utils.cache import metrics_key, get_cached, set_cached, _MISS
from adprofit.utils.helpers import parse_iso_date, utc_today
from adprofit.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/metrics", tags=["metrics"])


def _parse(value: Optional[str], name: str) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be YYYY-MM-DD")


def _range(start: Optional[date], end: Optional[date], name: str):
    if start and end and start > end:
        raise HTTPException(status_code=400, detail=f"{name} start is after its end")


@router.get("")
async def get_metrics(
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, default end - 30 days"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, default today (UTC)"),
    compare_start_date: Optional[str] = Query(None, description="Comparison period start"),
    compare_end_date: Optional[str] = Query(None, description="Comparison period end"),
    chart_start_date: Optional[str] = Query(None, description="Chart range start (replaces timeSeries)"),
    chart_end_date: Optional[str] = Query(None, description="Chart range end"),
    owner: int = Depends(get_data_owner),
    db: Session = Depends(get_db),
    sync_service: SyncService = Depends(get_sync_service),
):
    """
    Aggregated P&L for the data owner's cached metrics.

    Example: GET /metrics?tenant_id=12&start_date=2026-01-01&end_date=2026-01-31
    """
    end = _parse(end_date, "end_date") or utc_today()
    start = _parse(start_date, "start_date") or end - timedelta(days=settings.default_metrics_days)
    compare_start = _parse(compare_start_date, "compare_start_date")
    compare_end = _parse(compare_end_date, "compare_end_date")
    chart_start = _parse(chart_start_date, "chart_start_date")
    chart_end = _parse(chart_end_date, "chart_end_date")
    _range(start, end, "date range")
    _range(compare_start, compare_end, "comparison range")
    _range(chart_start, chart_end, "chart range")

    cache_key = metrics_key(owner, start, end, compare_start, compare_end, chart_start, chart_end)
    cached = get_cached(cache_key)
    if cached is not _MISS:
        return cached

    try:
        service = AggregationService(db, sync_service=sync_service)
        data = await service.aggregate(owner, start, end)

        if compare_start and compare_end:
            prev = await service.aggregate(owner, compare_start, compare_end, bootstrap=False)
            data["comparison"] = {"summary": prev["summary"], "timeSeries": prev["timeSeries"]}

        if chart_start and chart_end:
            data["timeSeries"] = await service.time_series(owner, chart_start, chart_end)

    except Exception as e:
        log.error(f"Error fetching metrics for tenant {owner}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch metrics")

    set_cached(cache_key, data, seconds=settings.metrics_cache_seconds)
    return data
