"""Simple in-memory TTL cache for dashboard metric payloads."""
import time
from typing import Any

_cache: dict[str, tuple[float, Any]] = {}
_MISS = object()


def metrics_key(tenant_id: int, *parts: Any) -> str:
    """Cache key for a tenant's metrics payload. Prefix is used for invalidation."""
    return f"metrics|{tenant_id}|" + "|".join(str(p) for p in parts)


def get_cached(key: str):
    """Return cached value if still valid, else _MISS sentinel."""
    now = time.time()
    if key in _cache:
        expires, value = _cache[key]
        if now < expires:
            return value
    return _MISS


def set_cached(key: str, value: Any, seconds: int = 60):
    """Store a value in cache with TTL."""
    if seconds <= 0:
        return
    _cache[key] = (time.time() + seconds, value)


def clear_cache():
    """Clear all cached values."""
    _cache.clear()


def clear_for_tenant(tenant_id: int):
    """Drop cached payloads of one tenant (call after its cache was merged)."""
    prefix = f"metrics|{tenant_id}|"
    for k in [k for k in _cache if k.startswith(prefix)]:
        _cache.pop(k, None)
