"""
Shared pytest fixtures.

DynamoDB and Redis are replaced by in-memory fakes so no AWS account or
Redis server is required. The fakes follow the service semantics the code
relies on: Limit is applied before filters, conditional writes raise
ConflictError, and SCAN matches glob patterns.
"""
import copy
import fnmatch
import os

os.environ.setdefault("OTEL_ENABLED", "false")

import pytest  # noqa: E402

from daybyday.clients.dynamodb_client import Page  # noqa: E402
from daybyday.clients.redis_client import Cache  # noqa: E402
from daybyday.config import Settings  # noqa: E402
from daybyday.db import DataAccessLayer  # noqa: E402
from daybyday.errors import ConflictError, StorageUnavailableError  # noqa: E402
from daybyday.schemas import UserCreate  # noqa: E402


class FakeStore:
    """Dict-backed stand-in for DynamoStore."""

    def __init__(self, settings: Settings) -> None:
        self.tables = settings.tables
        self.data: dict[str, dict[tuple, dict]] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        # Items per response, standing in for the 1 MB page cap
        self.page_size: int | None = None

    def _rows(self, table: str) -> dict[tuple, dict]:
        return self.data.setdefault(table, {})

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageUnavailableError(operation)

    @staticmethod
    def _key(key: dict) -> tuple:
        return key["PK"], key["SK"]

    async def get(self, table, key):
        self._check("get")
        item = self._rows(table).get(self._key(key))
        return copy.deepcopy(item)

    async def put(self, table, item, *, if_absent=False):
        self._check("put")
        rows = self._rows(table)
        if if_absent and self._key(item) in rows:
            raise ConflictError()
        rows[self._key(item)] = {k: copy.deepcopy(v) for k, v in item.items() if v is not None}

    async def update(self, table, key, changes, *, must_exist=False):
        self._check("update")
        rows = self._rows(table)
        if must_exist and self._key(key) not in rows:
            raise ConflictError()
        item = rows.setdefault(self._key(key), dict(key))
        for name, value in changes.items():
            if value is None:
                item.pop(name, None)
            else:
                item[name] = copy.deepcopy(value)
        return copy.deepcopy(item)

    async def increment(self, table, key, attribute, amount=1):
        self._check("increment")
        item = self._rows(table).setdefault(self._key(key), dict(key))
        item[attribute] = item.get(attribute, 0) + amount
        return copy.deepcopy(item)

    async def delete(self, table, key):
        self._check("delete")
        return self._rows(table).pop(self._key(key), None)

    async def delete_if_at_most(self, table, key, attribute, limit):
        self._check("delete_if_at_most")
        rows = self._rows(table)
        item = rows.get(self._key(key))
        if item is None or attribute not in item or item[attribute] > limit:
            return False
        del rows[self._key(key)]
        return True

    def _cap(self, limit):
        sizes = [s for s in (limit, self.page_size) if s]
        return min(sizes) if sizes else None

    @staticmethod
    def _page(candidates, filters, limit, start_key, match=None):
        if start_key:
            keys = [(c["PK"], c["SK"]) for c in candidates]
            position = keys.index((start_key["PK"], start_key["SK"])) + 1
            candidates = candidates[position:]
        evaluated = candidates[:limit] if limit else candidates
        more = bool(limit) and len(candidates) > limit

        items = []
        for item in evaluated:
            if any(item.get(k) != v for k, v in (filters or {}).items()):
                continue
            if match is not None and not match(item):
                continue
            items.append(copy.deepcopy(item))
        last = evaluated[-1] if more and evaluated else None
        return Page(items=items, last_key={"PK": last["PK"], "SK": last["SK"]} if last else None)

    async def query(self, table, pk_name, pk_value, *, index=None, sk_name="SK",
                    sk_prefix=None, sk_range=None, filters=None, forward=True,
                    limit=None, start_key=None):
        self._check("query")
        candidates = []
        for item in self._rows(table).values():
            if item.get(pk_name) != pk_value:
                continue
            sk = item.get(sk_name)
            if sk_prefix is not None and not (isinstance(sk, str) and sk.startswith(sk_prefix)):
                continue
            if sk_range is not None:
                low, high = sk_range
                if sk is None or sk < low or (high is not None and sk > high):
                    continue
            candidates.append(item)
        candidates.sort(key=lambda i: (str(i.get(sk_name, "")), i["SK"]), reverse=not forward)
        return self._page(candidates, filters, self._cap(limit), start_key)

    async def scan(self, table, *, filters=None, prefixes=None, limit=None, start_key=None):
        self._check("scan")
        candidates = sorted(self._rows(table).values(), key=lambda i: (i["PK"], i["SK"]))

        def match(item):
            if not prefixes:
                return True
            return any(
                isinstance(item.get(k), str) and item[k].startswith(v)
                for k, v in prefixes.items()
            )

        return self._page(candidates, filters, self._cap(limit), start_key, match)

    async def batch_get(self, table, keys):
        self._check("batch_get")
        rows = self._rows(table)
        return [copy.deepcopy(rows[self._key(k)]) for k in keys if self._key(k) in rows]

    async def batch_write(self, table, puts=(), deletes=()):
        self._check("batch_write")
        rows = self._rows(table)
        for item in puts:
            rows[self._key(item)] = {k: copy.deepcopy(v) for k, v in item.items() if v is not None}
        for key in deletes:
            rows.pop(self._key(key), None)

    async def add_once(self, table, *, marker, key, attribute, amount, attrs=None):
        self._check("add_once")
        rows = self._rows(table)
        if self._key(marker) in rows:
            return False
        rows[self._key(marker)] = copy.deepcopy(marker)
        item = rows.setdefault(self._key(key), dict(key))
        item[attribute] = item.get(attribute, 0) + amount
        item.update(copy.deepcopy(attrs or {}))
        return True

    # Test helpers
    def items(self, table: str) -> list[dict]:
        return list(self._rows(table).values())

    def find(self, table: str, sk_prefix: str) -> list[dict]:
        return [i for i in self.items(table) if i["SK"].startswith(sk_prefix)]


class FakeRedis:
    """The handful of redis.asyncio.Redis calls Cache makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _maybe_fail(self):
        if self.fail:
            raise ConnectionError("redis down")

    async def ping(self):
        self._maybe_fail()
        return True

    async def get(self, key):
        self._maybe_fail()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._maybe_fail()
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._maybe_fail()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match=None, count=None):
        self._maybe_fail()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        return None


# ─────────────────────────── Fixtures ────────────────────────────────────

@pytest.fixture()
def settings():
    return Settings(cache_enabled=True, otel_enabled=False, _env_file=None)


@pytest.fixture()
def store(settings):
    return FakeStore(settings)


@pytest.fixture()
def fake_redis():
    return FakeRedis()


@pytest.fixture()
def cache(settings, fake_redis):
    return Cache(settings, client=fake_redis)


@pytest.fixture()
def disabled_cache():
    return Cache(Settings(cache_enabled=False, otel_enabled=False, _env_file=None))


@pytest.fixture()
def dal(store, cache, settings):
    return DataAccessLayer(store, cache, settings)


@pytest.fixture()
def make_user(dal):
    async def _make(uid: str, username: str = None) -> dict:
        return await dal.users.create_user(
            UserCreate(uid=uid, username=username or f"{uid}_name",
                       email=f"{uid}@example.com", first_name=uid.title())
        )
    return _make
