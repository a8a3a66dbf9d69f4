# Business Logic Services
from hockey_sugar.services.dexcom_client import (
    DexcomAuthError,
    DexcomClient,
    DexcomError,
    DexcomFetchError,
    DexcomTokenExpiredError,
)
from hockey_sugar.services.notifier import GlucoseEventBroker
from hockey_sugar.services.polling import GlucosePipeline, PollResult
from hockey_sugar.services.scheduler import PollingScheduler
from hockey_sugar.services.threshold_policy import classify

__all__ = [
    "DexcomAuthError",
    "DexcomClient",
    "DexcomError",
    "DexcomFetchError",
    "DexcomTokenExpiredError",
    "GlucoseEventBroker",
    "GlucosePipeline",
    "PollResult",
    "PollingScheduler",
    "classify",
]
