"""
Stream processor: consumes DynamoDB Streams batches from the Social and
Content tables.

For every change record:
  1. Decode it and route on the item's entityType.
  2. Apply the aggregate-count delta exactly once per stream eventID.
  3. Write activity-feed items for the affected user.
  4. Invalidate the cache keys the change made stale.

Records are handled in order and in isolation: one bad record is logged
and counted but never stops the rest of the batch. If anything failed the
batch raises afterwards so Lambda redelivers it; already-applied records
are then no-ops.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from opentelemetry import trace

from daybyday.clients.dynamodb_client import DynamoStore
from daybyday.clients.redis_client import Cache
from daybyday.config import Settings, settings
from daybyday.db import DataAccessLayer
from daybyday.stream_processor.handlers import ChangeHandlers
from daybyday.stream_processor.records import ChangeRecord
from daybyday.telemetry import STREAM_BATCH_SECONDS, STREAM_RECORDS_TOTAL, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)


@dataclass
class BatchResult:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
        }


class BatchFailedError(RuntimeError):
    def __init__(self, result: BatchResult) -> None:
        super().__init__(f"Failed to process {result.failed} of {result.total} records")
        self.result = result


class StreamProcessor:
    def __init__(self, dal: DataAccessLayer, settings: Settings) -> None:
        self.handlers = ChangeHandlers(dal, settings)

    async def process_record(self, raw: dict) -> bool:
        """Handle one record; False when it was skipped."""
        record = ChangeRecord.from_stream(raw)
        entity = record.entity_type
        if entity is None:
            logger.warning(
                "No handler for entity type %r (event %s), skipping",
                record.raw_entity_type, record.event_id,
            )
            STREAM_RECORDS_TOTAL.labels(
                entity_type=str(record.raw_entity_type), outcome="skipped"
            ).inc()
            return False

        with tracer.start_as_current_span("stream.record") as span:
            span.set_attribute("stream.event_id", record.event_id)
            span.set_attribute("stream.event_name", record.event_name.value)
            span.set_attribute("stream.entity_type", entity.value)
            await self.handlers.dispatch(record)

        STREAM_RECORDS_TOTAL.labels(entity_type=entity.value, outcome="processed").inc()
        return True

    async def process_batch(self, records: list[dict]) -> BatchResult:
        result = BatchResult(total=len(records))
        logger.info("Processing %d stream records", result.total)

        t0 = time.perf_counter()
        for raw in records:
            try:
                if await self.process_record(raw):
                    result.processed += 1
                else:
                    result.skipped += 1
            except Exception as exc:
                event_id = raw.get("eventID")
                logger.exception("Error processing record %s", event_id)
                STREAM_RECORDS_TOTAL.labels(entity_type=_entity_hint(raw), outcome="failed").inc()
                result.failed += 1
                result.errors.append({"recordId": event_id, "error": str(exc)})
        STREAM_BATCH_SECONDS.observe(time.perf_counter() - t0)

        logger.info(
            "Batch complete: %d processed, %d skipped, %d failed",
            result.processed, result.skipped, result.failed,
        )
        if result.failed:
            raise BatchFailedError(result)
        return result


def _entity_hint(raw: dict) -> str:
    body = raw.get("dynamodb") or {}
    image = body.get("NewImage") or body.get("OldImage") or {}
    return (image.get("entityType") or {}).get("S", "unknown")


# ─────────────────────────── Lambda entry point ───────────────────────────

_loop: Optional[asyncio.AbstractEventLoop] = None
_processor: Optional[StreamProcessor] = None
_cache: Optional[Cache] = None


def _runtime() -> tuple[asyncio.AbstractEventLoop, StreamProcessor, Cache]:
    """Build the loop, store, cache and processor once per container."""
    global _loop, _processor, _cache
    if _processor is None:
        setup_tracing("stream")
        _loop = asyncio.new_event_loop()
        store = DynamoStore(settings)
        _cache = Cache(settings)
        _processor = StreamProcessor(DataAccessLayer(store, _cache, settings), settings)
    return _loop, _processor, _cache


async def _run(processor: StreamProcessor, cache: Cache, records: list[dict]) -> BatchResult:
    try:
        return await processor.process_batch(records)
    finally:
        await cache.wait_pending()


def handler(event: dict, context=None) -> dict:  # noqa: ANN001
    loop, processor, cache = _runtime()
    result = loop.run_until_complete(_run(processor, cache, event.get("Records", [])))
    return result.as_dict()
