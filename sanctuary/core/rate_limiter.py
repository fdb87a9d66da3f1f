"""Fixed-window rate limiter for costly endpoints (AI assist).

Each identity key (user id, else client IP) gets ``max_per_window`` accepted
calls per window. The window is fixed, not sliding: a caller may squeeze up
to twice the quota through by bursting on both sides of a reset.

Counters live in a pluggable store. The in-memory store is process-local
and forgets everything on restart; ``RedisRateLimitStore`` shares counters
between instances on a best-effort basis. Neither is a security boundary.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

import redis

logger = logging.getLogger("sanctuary")


def wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitEntry:
    window_start: float
    count: int


class InMemoryRateLimitStore:
    """Process-local dict of entries."""

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterator[Tuple[str, RateLimitEntry]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)


class RedisRateLimitStore:
    """Redis-backed entries shared by every instance pointing at the same DB.

    Each entry is a hash expiring after ``ttl_ms``, so Redis evicts stale
    keys on its own. Redis errors (refused connections, timeouts, server
    errors) are non-fatal: reads miss and writes are dropped, which makes the
    limiter fail open.
    """

    def __init__(self, client: redis.Redis, ttl_ms: int, prefix: str = "ratelimit:"):
        self.client = client
        self.ttl_ms = ttl_ms
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[RateLimitEntry]:
        try:
            raw = self.client.hgetall(self._key(key))
        except redis.RedisError:
            logger.warning("Redis unavailable, rate limit entry %r not read", key)
            return None
        if not raw:
            return None
        return RateLimitEntry(
            window_start=float(raw["window_start"]),
            count=int(raw["count"]),
        )

    def set(self, key: str, entry: RateLimitEntry) -> None:
        name = self._key(key)
        try:
            pipe = self.client.pipeline()
            pipe.hset(name, mapping={"window_start": entry.window_start, "count": entry.count})
            pipe.pexpire(name, self.ttl_ms)
            pipe.execute()
        except redis.RedisError:
            logger.warning("Redis unavailable, rate limit entry %r not stored", key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError:
            logger.warning("Redis unavailable, rate limit entry %r not deleted", key)

    def items(self) -> Iterator[Tuple[str, RateLimitEntry]]:
        try:
            names = list(self.client.scan_iter(match=f"{self.prefix}*"))
        except redis.RedisError:
            logger.warning("Redis unavailable, rate limit sweep skipped")
            return iter(())
        found = []
        for name in names:
            key = name[len(self.prefix):]
            entry = self.get(key)
            if entry is not None:
                found.append((key, entry))
        return iter(found)

    def __len__(self) -> int:
        return sum(1 for _ in self.items())


class FixedWindowRateLimiter:
    """Per-key fixed-window counter.

    ``allow`` and ``sweep`` hold a lock so the read-modify-write on a
    counter stays atomic when handlers run in a thread pool.
    """

    def __init__(
        self,
        window_ms: int = 60_000,
        max_per_window: int = 10,
        store=None,
        clock: Callable[[], float] = wall_clock_ms,
        name: str = "default",
    ):
        self.window_ms = window_ms
        self.max_per_window = max_per_window
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock
        self.name = name
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Count one call for ``key`` and report whether it is within quota."""
        key = str(key)
        with self._lock:
            now = self.clock()
            entry = self.store.get(key)
            if entry is None:
                self.store.set(key, RateLimitEntry(window_start=now, count=1))
                return True

            if now - entry.window_start > self.window_ms:
                entry.window_start = now
                entry.count = 1
                self.store.set(key, entry)
                return True

            entry.count += 1
            self.store.set(key, entry)
            allowed = entry.count <= self.max_per_window
        if not allowed:
            logger.warning("Rate limit '%s' exceeded for %s (%s calls)", self.name, key, entry.count)
        return allowed

    def retry_after_seconds(self, key: str) -> int:
        """Whole seconds until ``key`` gets a fresh window; 0 if it has none."""
        entry = self.store.get(str(key))
        if entry is None:
            return 0
        remaining_ms = entry.window_start + self.window_ms - self.clock()
        if remaining_ms < 0:
            return 0
        return max(1, math.ceil(remaining_ms / 1000))

    def sweep(self) -> int:
        """Drop entries idle for more than two windows. Returns how many went."""
        removed = 0
        with self._lock:
            now = self.clock()
            for key, entry in self.store.items():
                if now - entry.window_start > 2 * self.window_ms:
                    self.store.delete(key)
                    removed += 1
        logger.debug("Rate limit '%s' sweep removed %d entries", self.name, removed)
        return removed


async def run_periodic_sweep(limiter: FixedWindowRateLimiter, interval_seconds: float) -> None:
    """Sweep ``limiter`` every ``interval_seconds`` until cancelled.

    Sweeps run in a worker thread. A failed sweep is logged and the loop
    carries on.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(limiter.sweep)
        except Exception:
            logger.exception("Rate limit '%s' sweep failed", limiter.name)


def build_rate_limiter(settings) -> FixedWindowRateLimiter:
    """Create the AI-assist limiter with the store named by configuration."""
    store = None
    if settings.RATE_LIMIT_BACKEND == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        store = RedisRateLimitStore(client, ttl_ms=2 * settings.AI_ASSIST_WINDOW_MS)
    return FixedWindowRateLimiter(
        window_ms=settings.AI_ASSIST_WINDOW_MS,
        max_per_window=settings.AI_ASSIST_MAX_PER_WINDOW,
        store=store,
        name="ai_assist",
    )
