"""In-memory token bucket rate limiter keyed by client address."""

from __future__ import annotations

import time


class Bucket:
    __slots__ = ("tokens", "updated")

    def __init__(self, capacity: int) -> None:
        self.tokens = float(capacity)
        self.updated = time.monotonic()


_buckets: dict[str, Bucket] = {}


def allow(key: str, per_minute: int, burst: int) -> bool:
    """Return True when ``key`` still has a token; refill at ``per_minute``."""

    now = time.monotonic()
    bucket = _buckets.get(key)
    if bucket is None:
        bucket = _buckets[key] = Bucket(burst)
    refill = max(per_minute, 0) / 60.0
    bucket.tokens = min(float(burst), bucket.tokens + (now - bucket.updated) * refill)
    bucket.updated = now
    if bucket.tokens >= 1.0:
        bucket.tokens -= 1.0
        return True
    return False


def client_key(headers, fallback: str | None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return fallback or "unknown"
