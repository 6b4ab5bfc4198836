from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Protocol

import redis

from app.core.config import settings
from app.services.errors import RateLimited

_LOG = logging.getLogger("app.rate_limit")


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    current_value: int


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        ...


class InMemoryRateLimiter:
    SWEEP_INTERVAL_SECONDS = 60

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._data: dict[str, tuple[int, datetime]] = {}
        self._lock = Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._next_sweep_at: datetime | None = None

    def _sweep(self, now: datetime) -> None:
        if self._next_sweep_at is not None and now < self._next_sweep_at:
            return
        for stale in [key for key, (_, expires_at) in self._data.items() if expires_at <= now]:
            del self._data[stale]
        self._next_sweep_at = now + timedelta(seconds=self.SWEEP_INTERVAL_SECONDS)

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            count, expires_at = self._data.get(key, (0, now))
            if expires_at <= now:
                count = 0
                expires_at = now + timedelta(seconds=max(int(window_seconds), 1))
            count += 1
            self._data[key] = (count, expires_at)
            retry_after = max(0, int((expires_at - now).total_seconds()))
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=retry_after, current_value=count)


class RedisRateLimiter:
    def __init__(self, client: redis.Redis):
        self.client = client

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, int(max(window_seconds, 1)))
        ttl = int(self.client.ttl(key))
        if ttl < 0:
            ttl = int(max(window_seconds, 1))
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=ttl, current_value=count)


_cached_limiter: RateLimiter | None = None


def _build_limiter() -> RateLimiter:
    url = str(settings.REDIS_URL or "").strip()
    if not url:
        return InMemoryRateLimiter()
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisRateLimiter(client)
    except redis.RedisError:
        _LOG.warning("Redis limiter unavailable; fallback to in-memory limiter")
        return InMemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        _cached_limiter = _build_limiter()
    return _cached_limiter


def reset_rate_limiter_for_tests() -> None:
    global _cached_limiter
    _cached_limiter = None


def _hash_key_part(value: str | None) -> str:
    raw = str(value or "").strip()
    if not raw:
        return "-"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:20]


def enforce_otp_limit(action: str, *, mobile_number: str, client_ip: str | None) -> RateLimitResult | None:
    """Count one OTP ``send``/``verify`` hit per phone and per IP.

    Raises RateLimited once any bucket is over its limit. Returns None without
    touching the limiter when the limit for ``action`` is not configured (the
    default).
    """
    limit = int(settings.OTP_SEND_RATE_LIMIT if action == "send" else settings.OTP_VERIFY_RATE_LIMIT)
    if limit <= 0:
        return None
    window = int(max(settings.OTP_RATE_LIMIT_WINDOW_SECONDS, 1))
    keys = [f"otp:{action}:phone:{_hash_key_part(mobile_number)}"]
    if client_ip:
        keys.append(f"otp:{action}:ip:{_hash_key_part(client_ip)}")
    limiter = get_rate_limiter()
    last: RateLimitResult | None = None
    for key in keys:
        last = limiter.hit(key, limit=limit, window_seconds=window)
        if not last.allowed:
            _LOG.warning("otp %s limit reached key=%s count=%s", action, key.split(":")[2], last.current_value)
            raise RateLimited(max(last.retry_after_seconds, 1))
    return last
