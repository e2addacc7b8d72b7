"""Source adapters for ad platforms and revenue sources"""

from typing import Dict

from adprofit.connectors.base import SourceAdapter, SourceAdapterError, MetricRow
from adprofit.connectors.tiktok import TikTokAdapter
from adprofit.connectors.meta import MetaAdapter
from adprofit.connectors.posthog import PostHogAdapter


def default_adapters() -> Dict[str, SourceAdapter]:
    """One adapter instance per supported platform."""
    return {
        "tiktok": TikTokAdapter(),
        "meta": MetaAdapter(),
        "posthog": PostHogAdapter(),
    }


__all__ = [
    "SourceAdapter",
    "SourceAdapterError",
    "MetricRow",
    "TikTokAdapter",
    "MetaAdapter",
    "PostHogAdapter",
    "default_adapters",
]
