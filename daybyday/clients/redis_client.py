"""
ElastiCache (Redis) cache-aside layer.

Key scheme — values are JSON strings:
  user:{uid}                   profile              TTL user_profile
  connections:{uid}:{status}   connection list      TTL friend_list
  streak:{uid}                 streak record        TTL streak
  entry:{id}                   entry                TTL entry
  entry-count:{uid}            entries per user     TTL entry_counts
  reactions:{id} / comments:{id}
  reaction-count:{id} / comment-count:{id}
  discover-users:{limit}       first discover page  TTL discover_users
  feed:{uid}                   first feed page      TTL feed

The cache is strictly best-effort. Every Redis failure is logged and turned
into a miss (`None`), `False` or `0`; nothing here raises to the caller.
With caching disabled every call is a no-op that reports a miss.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis

from daybyday.config import Settings
from daybyday.telemetry import CACHE_REQUESTS_TOTAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TTLPolicy:
    user_profile: int = 3600
    friend_list: int = 1800
    entry_counts: int = 300
    discover_users: int = 1800
    reaction_counts: int = 300
    comment_counts: int = 300
    streak: int = 600
    entry: int = 300
    feed: int = 120

    @classmethod
    def from_settings(cls, settings: Settings) -> "TTLPolicy":
        return cls(
            user_profile=settings.cache_ttl_user_profile,
            friend_list=settings.cache_ttl_friend_list,
            entry_counts=settings.cache_ttl_entry_counts,
            discover_users=settings.cache_ttl_discover_users,
            reaction_counts=settings.cache_ttl_reaction_counts,
            comment_counts=settings.cache_ttl_comment_counts,
            streak=settings.cache_ttl_streak,
            entry=settings.cache_ttl_entry,
            feed=settings.cache_ttl_feed,
        )


class Cache:
    def __init__(self, settings: Settings, client: Optional[aioredis.Redis] = None) -> None:
        self.enabled = settings.cache_enabled
        self.ttl = TTLPolicy.from_settings(settings)
        self._settings = settings
        self._redis = client
        self._connected = client is not None
        self._lock = asyncio.Lock()
        self._last_attempt: Optional[float] = None
        self._pending: set[asyncio.Task] = set()
        self.hits = 0
        self.misses = 0

    # ─────────────────────── Lifecycle ────────────────────────────────────

    async def init(self) -> None:
        """Connect once; safe to call concurrently and repeatedly."""
        if not self.enabled or self._connected:
            return

        async with self._lock:
            if self._connected:
                return
            now = time.monotonic()
            if (
                self._last_attempt is not None
                and now - self._last_attempt < self._settings.cache_reconnect_interval
            ):
                return
            self._last_attempt = now

            client = aioredis.Redis(
                host=self._settings.cache_host,
                port=self._settings.cache_port,
                socket_connect_timeout=self._settings.cache_connect_timeout,
                socket_timeout=self._settings.cache_command_timeout,
                decode_responses=True,
            )
            try:
                await client.ping()
            except Exception as exc:
                logger.error(
                    "Failed to connect to Redis at %s:%s: %s",
                    self._settings.cache_host, self._settings.cache_port, exc,
                )
                await client.aclose()
                return

            self._redis = client
            self._connected = True
            logger.info(
                "Redis connected at %s:%s",
                self._settings.cache_host, self._settings.cache_port,
            )

    async def _ready(self) -> bool:
        if not self.enabled:
            return False
        await self.init()
        return self._connected

    async def wait_pending(self) -> None:
        """Wait for fire-and-forget cache writes scheduled by get_or_compute."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_pending()
        if self._redis is not None and self._connected:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except Exception as exc:
                logger.error("Error closing Redis: %s", exc)
        self._connected = False

    # ─────────────────────── Primitives ───────────────────────────────────

    async def get(self, key: str) -> Any:
        if not await self._ready():
            return None
        try:
            raw = await self._redis.get(key)
            value = json.loads(raw) if raw is not None else None
        except Exception as exc:
            logger.error("GET error for key %s: %s", key, exc)
            CACHE_REQUESTS_TOTAL.labels(result="error").inc()
            self.misses += 1
            return None

        if value is None:
            logger.debug("Cache MISS: %s", key)
            CACHE_REQUESTS_TOTAL.labels(result="miss").inc()
            self.misses += 1
            return None

        logger.debug("Cache HIT: %s", key)
        CACHE_REQUESTS_TOTAL.labels(result="hit").inc()
        self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        if not await self._ready():
            return False
        try:
            await self._redis.set(key, json.dumps(value), ex=ttl)
        except Exception as exc:
            logger.error("SET error for key %s: %s", key, exc)
            return False
        logger.debug("Cache SET: %s (TTL %ss)", key, ttl)
        return True

    async def delete(self, key: str) -> bool:
        if not await self._ready():
            return False
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.error("DEL error for key %s: %s", key, exc)
            return False
        logger.debug("Cache DEL: %s", key)
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns how many went."""
        if not await self._ready():
            return 0
        try:
            keys = [k async for k in self._redis.scan_iter(match=pattern, count=500)]
            if not keys:
                return 0
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.error("DEL PATTERN error for %s: %s", pattern, exc)
            return 0
        logger.debug("Cache DEL PATTERN: %s (%d keys)", pattern, len(keys))
        return len(keys)

    # ─────────────────────── Invalidation groups ──────────────────────────

    async def invalidate_user(self, uid: str) -> None:
        await asyncio.gather(
            self.delete(f"user:{uid}"),
            self.delete_pattern(f"friends:{uid}:*"),
            self.delete_pattern(f"connections:{uid}:*"),
            self.delete(f"streak:{uid}"),
        )

    async def invalidate_entry(self, entry_id: str) -> None:
        await asyncio.gather(
            self.delete(f"entry:{entry_id}"),
            self.delete(f"reactions:{entry_id}"),
            self.delete(f"comments:{entry_id}"),
            self.delete(f"reaction-count:{entry_id}"),
            self.delete(f"comment-count:{entry_id}"),
        )

    async def invalidate_feed(self, uid: str) -> None:
        await self.delete(f"feed:{uid}")

    # ─────────────────────── Cache-aside helper ───────────────────────────

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: int,
    ) -> Any:
        """
        Return the cached value for `key`, or compute it.

        On a miss `compute` runs exactly once and its result is returned
        straight away; the cache write happens in a detached task so the
        caller never waits on Redis.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute()

        if value is not None and self.enabled:
            task = asyncio.create_task(self._populate(key, value, ttl))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return value

    async def _populate(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.set(key, value, ttl)
        except Exception as exc:
            logger.error("Background SET failed for %s: %s", key, exc)

    # ─────────────────────── Stats ────────────────────────────────────────

    def get_stats(self) -> dict:
        if not self.enabled:
            return {"enabled": False}
        return {
            "enabled": True,
            "connected": self._connected,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": hit_rate(self.hits, self.misses),
        }


def hit_rate(hits: int, misses: int) -> float:
    total = hits + misses
    if total == 0:
        return 0
    return round(hits / total * 100, 2)
