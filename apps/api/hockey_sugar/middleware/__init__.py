"""Middleware package for the Hockey Sugar API."""

from hockey_sugar.middleware.correlation import (
    CORRELATION_ID_HEADER,
    CorrelationIdMiddleware,
)
from hockey_sugar.middleware.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "CORRELATION_ID_HEADER",
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
]
