"""Hockey Sugar FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from hockey_sugar.config import settings, validate_secret_key
from hockey_sugar.database import close_database
from hockey_sugar.logging_config import get_logger, setup_logging
from hockey_sugar.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from hockey_sugar.routers import (
    dexcom,
    glucose,
    glucose_stream,
    health,
    messages,
    preferences,
    webhook,
)
from hockey_sugar.services.notifier import GlucoseEventBroker
from hockey_sugar.services.polling import GlucosePipeline
from hockey_sugar.services.scheduler import PollingScheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the event broker, pipeline and poll scheduler; tear them down."""
    validate_secret_key()

    broker = GlucoseEventBroker()
    pipeline = GlucosePipeline.from_settings(broker)
    app.state.broker = broker
    app.state.pipeline = pipeline
    app.state.poll_scheduler = None

    if settings.dexcom_poll_enabled and not settings.testing:
        poll_scheduler = PollingScheduler(pipeline, settings.poll_interval_seconds)
        poll_scheduler.start()
        app.state.poll_scheduler = poll_scheduler

    logger.info("Hockey Sugar API started", environment=settings.environment)

    yield

    logger.info("Shutting down Hockey Sugar API...")
    if app.state.poll_scheduler is not None:
        await app.state.poll_scheduler.stop()
    broker.close()
    await close_database()
    logger.info("Hockey Sugar API shutdown complete")


app = FastAPI(
    title="Hockey Sugar API",
    description="Glucose monitoring for athletes, their parents and coaches",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(dexcom.router)
app.include_router(glucose.router)
app.include_router(glucose_stream.router)
app.include_router(messages.router)
app.include_router(preferences.router)
app.include_router(webhook.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Hockey Sugar API",
        "version": "0.1.0",
        "docs": "/docs",
    }
