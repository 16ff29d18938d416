"""
DynamoDB store handle.

Tables (names prefixed with settings.app_name):
  -Main     users, streaks, connections, partnerships, invites
  -Content  entries, trips, shares, prompts
  -Social   reactions, comments, aggregate counts, stream-event markers
  -Feed     activity feed (written only by the stream processor)

boto3 is synchronous, so every call runs in the loop's default executor and
only suspends the current invocation. The client carries explicit
connect/read timeouts and bounded retries; anything that still fails is
logged and re-raised as StorageUnavailableError.
"""
import asyncio
import base64
import binascii
import functools
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import Binary
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from daybyday.config import Settings, TableNames
from daybyday.errors import ConflictError, InvalidInputError, StorageUnavailableError
from daybyday.telemetry import STORAGE_ERRORS_TOTAL

logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: list[dict] = field(default_factory=list)
    last_key: Optional[dict] = None


# ─────────────────────────── Type conversion ─────────────────────────────

def to_plain(value: Any) -> Any:
    """Decimal → int/float, sets → lists, Binary → bytes, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(to_plain(v) for v in value)
    if isinstance(value, Binary):
        return value.value
    return value


def to_item(value: Any) -> Any:
    """Drop None attributes and turn floats into Decimal for boto3."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_item(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [to_item(v) for v in value]
    return value


def encode_cursor(last_key: Optional[dict]) -> Optional[str]:
    if not last_key:
        return None
    raw = json.dumps(to_plain(last_key)).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8")


def decode_cursor(cursor: Optional[str]) -> Optional[dict]:
    if not cursor:
        return None
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("utf-8"))
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise InvalidInputError("cursor", "not a valid pagination token")
    if not isinstance(decoded, dict):
        raise InvalidInputError("cursor", "not a valid pagination token")
    return decoded


def _filter_expression(equals: Optional[dict], prefixes: Optional[dict] = None):
    condition = None
    for name, value in (equals or {}).items():
        part = Attr(name).eq(value)
        condition = part if condition is None else condition & part
    for name, value in (prefixes or {}).items():
        part = Attr(name).begins_with(value)
        condition = part if condition is None else condition | part
    return condition


# ─────────────────────────── Store ───────────────────────────────────────

class DynamoStore:
    def __init__(self, settings: Settings, resource=None) -> None:
        self.tables: TableNames = settings.tables
        self._resource = resource or boto3.resource(
            "dynamodb",
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
            config=Config(
                connect_timeout=settings.dynamodb_connect_timeout,
                read_timeout=settings.dynamodb_read_timeout,
                retries={
                    "max_attempts": settings.dynamodb_max_attempts,
                    "mode": "standard",
                },
            ),
        )
        self._handles: dict[str, Any] = {}

    def _table(self, name: str):
        if name not in self._handles:
            self._handles[name] = self._resource.Table(name)
        return self._handles[name]

    async def _call(self, operation: str, fn, *, passthrough: tuple = (), **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, **kwargs))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in passthrough:
                raise
            if code == "ConditionalCheckFailedException":
                raise ConflictError() from exc
            STORAGE_ERRORS_TOTAL.labels(operation=operation).inc()
            logger.error("DynamoDB %s failed: %s", operation, code or exc)
            raise StorageUnavailableError(operation) from exc
        except BotoCoreError as exc:
            STORAGE_ERRORS_TOTAL.labels(operation=operation).inc()
            logger.error("DynamoDB %s failed: %s", operation, exc)
            raise StorageUnavailableError(operation) from exc

    # ─────────────────────── Single-item ops ──────────────────────────────

    async def get(self, table: str, key: dict) -> Optional[dict]:
        resp = await self._call("get", self._table(table).get_item, Key=key)
        item = resp.get("Item")
        return to_plain(item) if item is not None else None

    async def put(self, table: str, item: dict, *, if_absent: bool = False) -> None:
        kwargs: dict[str, Any] = {"Item": to_item(item)}
        if if_absent:
            kwargs["ConditionExpression"] = "attribute_not_exists(PK)"
        await self._call("put", self._table(table).put_item, **kwargs)

    async def update(
        self,
        table: str,
        key: dict,
        changes: dict,
        *,
        must_exist: bool = False,
    ) -> dict:
        """SET each attribute in `changes` (REMOVE when None); return the new item."""
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        sets, removes = [], []
        for i, (name, value) in enumerate(changes.items()):
            names[f"#a{i}"] = name
            if value is None:
                removes.append(f"#a{i}")
            else:
                values[f":v{i}"] = to_item(value)
                sets.append(f"#a{i} = :v{i}")

        expression = []
        if sets:
            expression.append("SET " + ", ".join(sets))
        if removes:
            expression.append("REMOVE " + ", ".join(removes))

        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": " ".join(expression),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        if must_exist:
            kwargs["ConditionExpression"] = "attribute_exists(PK)"
        resp = await self._call("update", self._table(table).update_item, **kwargs)
        return to_plain(resp.get("Attributes", {}))

    async def increment(self, table: str, key: dict, attribute: str, amount: int = 1) -> dict:
        resp = await self._call(
            "increment",
            self._table(table).update_item,
            Key=key,
            UpdateExpression="SET #a = if_not_exists(#a, :zero) + :inc",
            ExpressionAttributeNames={"#a": attribute},
            ExpressionAttributeValues={":zero": 0, ":inc": amount},
            ReturnValues="ALL_NEW",
        )
        return to_plain(resp.get("Attributes", {}))

    async def delete(self, table: str, key: dict) -> Optional[dict]:
        resp = await self._call(
            "delete", self._table(table).delete_item, Key=key, ReturnValues="ALL_OLD"
        )
        old = resp.get("Attributes")
        return to_plain(old) if old else None

    async def delete_if_at_most(self, table: str, key: dict, attribute: str, limit: int) -> bool:
        """Delete the item only while `attribute <= limit`."""
        try:
            await self._call(
                "delete",
                self._table(table).delete_item,
                Key=key,
                ConditionExpression=Attr(attribute).lte(limit),
            )
        except ConflictError:
            return False
        return True

    # ─────────────────────── Multi-item ops ───────────────────────────────

    async def query(
        self,
        table: str,
        pk_name: str,
        pk_value: str,
        *,
        index: Optional[str] = None,
        sk_name: str = "SK",
        sk_prefix: Optional[str] = None,
        sk_range: Optional[tuple[str, Optional[str]]] = None,
        filters: Optional[dict] = None,
        forward: bool = True,
        limit: Optional[int] = None,
        start_key: Optional[dict] = None,
    ) -> Page:
        condition = Key(pk_name).eq(pk_value)
        if sk_prefix is not None:
            condition = condition & Key(sk_name).begins_with(sk_prefix)
        elif sk_range is not None:
            low, high = sk_range
            if high is None:
                condition = condition & Key(sk_name).gte(low)
            else:
                condition = condition & Key(sk_name).between(low, high)

        kwargs: dict[str, Any] = {
            "KeyConditionExpression": condition,
            "ScanIndexForward": forward,
        }
        if index:
            kwargs["IndexName"] = index
        filter_expr = _filter_expression(filters)
        if filter_expr is not None:
            kwargs["FilterExpression"] = filter_expr
        if limit:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key

        resp = await self._call("query", self._table(table).query, **kwargs)
        return Page(
            items=[to_plain(i) for i in resp.get("Items", [])],
            last_key=resp.get("LastEvaluatedKey"),
        )

    async def scan(
        self,
        table: str,
        *,
        filters: Optional[dict] = None,
        prefixes: Optional[dict] = None,
        limit: Optional[int] = None,
        start_key: Optional[dict] = None,
    ) -> Page:
        """`filters` are ANDed equalities; `prefixes` are ORed begins_with."""
        kwargs: dict[str, Any] = {}
        equal_expr = _filter_expression(filters)
        prefix_expr = _filter_expression(None, prefixes)
        if equal_expr is not None and prefix_expr is not None:
            kwargs["FilterExpression"] = equal_expr & prefix_expr
        elif equal_expr is not None or prefix_expr is not None:
            kwargs["FilterExpression"] = equal_expr if equal_expr is not None else prefix_expr
        if limit:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key

        resp = await self._call("scan", self._table(table).scan, **kwargs)
        return Page(
            items=[to_plain(i) for i in resp.get("Items", [])],
            last_key=resp.get("LastEvaluatedKey"),
        )

    async def batch_get(self, table: str, keys: list[dict]) -> list[dict]:
        """Fetch up to any number of keys, 100 per request, retrying unprocessed."""
        items: list[dict] = []
        for start in range(0, len(keys), 100):
            request = {table: {"Keys": keys[start:start + 100]}}
            for _ in range(5):
                resp = await self._call(
                    "batch_get", self._resource.batch_get_item, RequestItems=request
                )
                items.extend(to_plain(i) for i in resp.get("Responses", {}).get(table, []))
                request = resp.get("UnprocessedKeys") or {}
                if not request:
                    break
            else:
                logger.warning("batch_get left unprocessed keys on %s", table)
        return items

    async def batch_write(
        self,
        table: str,
        puts: Iterable[dict] = (),
        deletes: Iterable[dict] = (),
    ) -> None:
        def _write() -> None:
            with self._table(table).batch_writer() as batch:
                for item in puts:
                    batch.put_item(Item=to_item(item))
                for key in deletes:
                    batch.delete_item(Key=key)

        await self._call("batch_write", _write)

    async def add_once(
        self,
        table: str,
        *,
        marker: dict,
        key: dict,
        attribute: str,
        amount: int,
        attrs: Optional[dict] = None,
    ) -> bool:
        """
        Atomically write `marker` and ADD `amount` to `attribute` on `key`.

        Returns False, changing nothing, when the marker already exists,
        meaning the same change event was already applied.
        """
        names = {"#n": attribute}
        values: dict[str, Any] = {":d": amount}
        sets = []
        for i, (name, value) in enumerate((attrs or {}).items()):
            names[f"#s{i}"] = name
            values[f":s{i}"] = to_item(value)
            sets.append(f"#s{i} = :s{i}")
        expression = "ADD #n :d"
        if sets:
            expression += " SET " + ", ".join(sets)

        transact = [
            {
                "Put": {
                    "TableName": table,
                    "Item": to_item(marker),
                    "ConditionExpression": "attribute_not_exists(PK)",
                }
            },
            {
                "Update": {
                    "TableName": table,
                    "Key": key,
                    "UpdateExpression": expression,
                    "ExpressionAttributeNames": names,
                    "ExpressionAttributeValues": values,
                }
            },
        ]
        try:
            await self._call(
                "add_once",
                self._resource.meta.client.transact_write_items,
                passthrough=("TransactionCanceledException",),
                TransactItems=transact,
            )
        except ClientError as exc:
            reasons = exc.response.get("CancellationReasons") or []
            if reasons and reasons[0].get("Code") == "ConditionalCheckFailed":
                return False
            STORAGE_ERRORS_TOTAL.labels(operation="add_once").inc()
            logger.error("DynamoDB add_once cancelled: %s", reasons)
            raise StorageUnavailableError("add_once") from exc
        return True
