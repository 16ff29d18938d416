"""
Tests for the Redis cache-aside layer: primitives, invalidation groups,
get_or_compute, disabled mode, failure handling and stats.
"""
import asyncio
import json

from daybyday.clients.redis_client import Cache, TTLPolicy, hit_rate
from daybyday.config import Settings


def run(coro):
    return asyncio.run(coro)


class TestPrimitives:
    def test_set_get_roundtrip_json(self, cache, fake_redis):
        async def scenario():
            assert await cache.set("user:u1", {"uid": "u1", "n": 3}, 60) is True
            return await cache.get("user:u1")

        assert run(scenario()) == {"uid": "u1", "n": 3}
        assert json.loads(fake_redis.store["user:u1"]) == {"uid": "u1", "n": 3}
        assert fake_redis.ttls["user:u1"] == 60

    def test_miss_returns_none(self, cache):
        assert run(cache.get("nope")) is None
        assert cache.misses == 1

    def test_delete(self, cache, fake_redis):
        fake_redis.store["k"] = '"v"'
        assert run(cache.delete("k")) is True
        assert "k" not in fake_redis.store

    def test_delete_pattern_counts_matches(self, cache, fake_redis):
        for key in ("connections:u1:pending", "connections:u1:accepted", "connections:u2:accepted"):
            fake_redis.store[key] = "[]"
        assert run(cache.delete_pattern("connections:u1:*")) == 2
        assert list(fake_redis.store) == ["connections:u2:accepted"]

    def test_delete_pattern_no_matches(self, cache):
        assert run(cache.delete_pattern("nothing:*")) == 0


class TestInvalidation:
    def test_invalidate_entry_removes_exactly_five_keys(self, cache, fake_redis):
        entry_keys = [
            "entry:E1", "reactions:E1", "comments:E1",
            "reaction-count:E1", "comment-count:E1",
        ]
        survivors = ["entry:E2", "reactions:E10", "feed:E1", "entry-count:E1"]
        for key in entry_keys + survivors:
            fake_redis.store[key] = "1"

        run(cache.invalidate_entry("E1"))
        assert sorted(fake_redis.store) == sorted(survivors)

    def test_invalidate_user(self, cache, fake_redis):
        for key in ("user:u1", "streak:u1", "connections:u1:accepted", "friends:u1:x", "user:u2"):
            fake_redis.store[key] = "1"
        run(cache.invalidate_user("u1"))
        assert list(fake_redis.store) == ["user:u2"]

    def test_invalidate_feed(self, cache, fake_redis):
        fake_redis.store["feed:u1"] = "{}"
        run(cache.invalidate_feed("u1"))
        assert fake_redis.store == {}


class TestGetOrCompute:
    def test_computes_once_then_hits(self, cache):
        calls = []

        async def compute():
            calls.append(1)
            return {"value": 42}

        async def scenario():
            first = await cache.get_or_compute("k", compute, 30)
            await cache.wait_pending()
            second = await cache.get_or_compute("k", compute, 30)
            return first, second

        first, second = run(scenario())
        assert first == second == {"value": 42}
        assert len(calls) == 1

    def test_none_is_not_cached(self, cache, fake_redis):
        calls = []

        async def compute():
            calls.append(1)
            return None

        async def scenario():
            await cache.get_or_compute("k", compute, 30)
            await cache.wait_pending()
            await cache.get_or_compute("k", compute, 30)

        run(scenario())
        assert len(calls) == 2
        assert "k" not in fake_redis.store

    def test_falsy_values_are_cached(self, cache, fake_redis):
        async def scenario():
            await cache.get_or_compute("count", lambda: asyncio.sleep(0, result=0), 30)
            await cache.wait_pending()

        run(scenario())
        assert fake_redis.store["count"] == "0"

    def test_redis_failure_still_returns_computed_value(self, cache, fake_redis):
        fake_redis.fail = True

        async def compute():
            return "fresh"

        async def scenario():
            value = await cache.get_or_compute("k", compute, 30)
            await cache.wait_pending()
            return value

        assert run(scenario()) == "fresh"


class TestDisabledMode:
    def test_every_op_is_a_noop(self, disabled_cache):
        async def scenario():
            return (
                await disabled_cache.get("k"),
                await disabled_cache.set("k", 1, 10),
                await disabled_cache.delete("k"),
                await disabled_cache.delete_pattern("*"),
            )

        assert run(scenario()) == (None, False, False, 0)

    def test_get_or_compute_passes_through(self, disabled_cache):
        async def compute():
            return [1, 2]

        assert run(disabled_cache.get_or_compute("k", compute, 10)) == [1, 2]
        assert disabled_cache._pending == set()

    def test_stats_when_disabled(self, disabled_cache):
        assert disabled_cache.get_stats() == {"enabled": False}


class TestFailures:
    def test_get_error_is_a_miss(self, cache, fake_redis):
        fake_redis.fail = True
        assert run(cache.get("k")) is None
        assert cache.misses == 1

    def test_set_and_delete_errors_return_false(self, cache, fake_redis):
        fake_redis.fail = True
        assert run(cache.set("k", 1, 10)) is False
        assert run(cache.delete("k")) is False
        assert run(cache.delete_pattern("k*")) == 0

    def test_corrupt_json_is_a_miss(self, cache, fake_redis):
        fake_redis.store["k"] = "{not json"
        assert run(cache.get("k")) is None

    def test_failed_connect_is_not_retried_within_interval(self, monkeypatch):
        attempts = []

        class Unreachable:
            def __init__(self, **kwargs):
                attempts.append(kwargs)

            async def ping(self):
                raise ConnectionError("refused")

            async def aclose(self):
                return None

        monkeypatch.setattr("daybyday.clients.redis_client.aioredis.Redis", Unreachable)
        cache = Cache(Settings(cache_enabled=True, cache_reconnect_interval=60, _env_file=None))

        async def scenario():
            await asyncio.gather(cache.get("a"), cache.get("b"))
            await cache.get("c")

        run(scenario())
        assert len(attempts) == 1
        assert cache.get_stats()["connected"] is False

    def test_concurrent_init_builds_one_client(self, monkeypatch):
        built = []

        class Reachable:
            def __init__(self, **kwargs):
                built.append(self)

            async def ping(self):
                await asyncio.sleep(0)
                return True

            async def aclose(self):
                return None

        monkeypatch.setattr("daybyday.clients.redis_client.aioredis.Redis", Reachable)
        cache = Cache(Settings(cache_enabled=True, cache_reconnect_interval=0, _env_file=None))

        async def scenario():
            await asyncio.gather(*[cache.init() for _ in range(10)])

        run(scenario())
        assert len(built) == 1
        assert cache.get_stats()["connected"] is True


class TestStats:
    def test_hit_rate(self, cache, fake_redis):
        fake_redis.store["k"] = '"v"'

        async def scenario():
            await cache.get("k")
            await cache.get("k")
            await cache.get("missing")

        run(scenario())
        stats = cache.get_stats()
        assert stats == {
            "enabled": True,
            "connected": True,
            "hits": 2,
            "misses": 1,
            "hit_rate": 66.67,
        }

    def test_hit_rate_zero_total(self):
        assert hit_rate(0, 0) == 0

    def test_ttl_policy_defaults(self):
        policy = TTLPolicy.from_settings(Settings(_env_file=None))
        assert policy.user_profile == 3600
        assert policy.friend_list == 1800
        assert policy.entry_counts == 300
        assert policy.discover_users == 1800
        assert policy.reaction_counts == 300
        assert policy.comment_counts == 300
        assert policy.streak == 600
