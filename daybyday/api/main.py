"""
DayByDay journal API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Build the DynamoDB store handle
  3. Connect the Redis cache (best-effort; the API runs without it)
  4. Wire the data access layer onto app.state
  5. Expose Prometheus /metrics endpoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from prometheus_client import make_asgi_app

from daybyday.api.routers import entries, feed, social
from daybyday.clients.dynamodb_client import DynamoStore
from daybyday.clients.redis_client import Cache
from daybyday.config import settings
from daybyday.db import DataAccessLayer
from daybyday.errors import (
    DayByDayError,
    app_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from daybyday.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the store and cache handles for the life of the process."""
    logger.info("Starting DayByDay API (env=%s)", settings.environment)

    store = DynamoStore(settings)
    cache = Cache(settings)
    await cache.init()
    app.state.dal = DataAccessLayer(store, cache, settings)

    logger.info("API ready (cache %s)", "enabled" if cache.enabled else "disabled")
    yield

    logger.info("Shutting down...")
    await cache.close()


app = FastAPI(
    title="DayByDay API",
    description="Journal entries, social reactions and activity feed.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_exception_handler(DayByDayError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(entries.router, prefix="/entries", tags=["Entries"])
app.include_router(social.router, prefix="/entries", tags=["Social"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}


@app.get("/cache/stats", tags=["Health"])
async def cache_stats():
    return app.state.dal.cache.get_stats()
