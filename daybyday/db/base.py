"""Shared plumbing for the repositories: injected handles and input checks."""
from datetime import datetime, timezone
from typing import Optional

from daybyday.clients.dynamodb_client import DynamoStore
from daybyday.clients.redis_client import Cache
from daybyday.errors import InvalidInputError
from daybyday.ulid import is_valid


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(field, "required")
    return value


def require_id(value: Optional[str], field: str) -> str:
    """Ids issued by this service are ULIDs; reject anything else early."""
    if not is_valid(value):
        raise InvalidInputError(field, "malformed id")
    return value


def check_limit(limit: int, maximum: int = 100) -> int:
    if not 1 <= limit <= maximum:
        raise InvalidInputError("limit", f"must be between 1 and {maximum}")
    return limit


class Repository:
    def __init__(self, store: DynamoStore, cache: Cache) -> None:
        self.store = store
        self.cache = cache
        self.tables = store.tables

    async def query_all(self, table: str, pk_name: str, pk_value: str, **kwargs) -> list[dict]:
        """Follow LastEvaluatedKey until the partition is exhausted."""
        items: list[dict] = []
        start_key = None
        while True:
            page = await self.store.query(table, pk_name, pk_value, start_key=start_key, **kwargs)
            items.extend(page.items)
            start_key = page.last_key
            if not start_key:
                return items

    async def query_upto(
        self, table: str, pk_name: str, pk_value: str, limit: int, **kwargs
    ) -> list[dict]:
        """
        Up to `limit` items that pass the filters.

        DynamoDB applies Limit before the filter expression, so a page can
        come back short or empty while matching items remain further on.
        Keep paging until `limit` matches are collected or the partition ends.
        """
        items: list[dict] = []
        start_key = None
        while len(items) < limit:
            page = await self.store.query(
                table, pk_name, pk_value, limit=limit, start_key=start_key, **kwargs
            )
            items.extend(page.items)
            start_key = page.last_key
            if not start_key:
                break
        return items[:limit]
