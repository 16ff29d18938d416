"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: cache hit/miss, storage errors, stream throughput

Tracing is initialised once per process by the entry point (API lifespan or
the stream-processor Lambda handler).
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from prometheus_client import Counter, Histogram

from daybyday.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
CACHE_REQUESTS_TOTAL = Counter(
    "cache_requests_total",
    "Cache lookups by outcome",
    ["result"],  # 'hit', 'miss' or 'error'
)

STORAGE_ERRORS_TOTAL = Counter(
    "storage_errors_total",
    "DynamoDB calls that failed and surfaced as StorageUnavailableError",
    ["operation"],
)

STREAM_RECORDS_TOTAL = Counter(
    "stream_records_total",
    "Change-log records seen by the stream processor",
    ["entity_type", "outcome"],  # outcome: 'processed', 'skipped', 'failed'
)

STREAM_BATCH_SECONDS = Histogram(
    "stream_batch_seconds",
    "Wall-clock time to process one stream batch",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

_configured = False


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(component: str = "api") -> None:
    """
    Configure the global OTel TracerProvider with OTLP/Jaeger export.

    Spans carry `service.name` = `{service_name}-{component}`, so the API and
    the stream processor show up as separate services sharing one config.
    Only the first call in a process takes effect.
    """
    global _configured
    if _configured or not settings.otel_enabled:
        return

    resource = Resource.create(
        {
            "service.name": f"{settings.service_name}-{component}",
            "service.namespace": settings.app_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("OTLP exporter unavailable, spans will not be exported: %s", exc)

    trace.set_tracer_provider(provider)

    # Auto-instrument the Redis and boto3 clients so their spans appear in traces
    RedisInstrumentor().instrument()
    BotocoreInstrumentor().instrument()
    _configured = True


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app)
