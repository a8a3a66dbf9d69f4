"""Glucose classification against low/high thresholds."""

from dataclasses import dataclass

from hockey_sugar.models.glucose import StatusType
from hockey_sugar.models.preferences import (
    DEFAULT_HIGH_THRESHOLD,
    DEFAULT_LOW_THRESHOLD,
)


@dataclass(frozen=True)
class Thresholds:
    """A low/high pair in mg/dL."""

    low: float = DEFAULT_LOW_THRESHOLD
    high: float = DEFAULT_HIGH_THRESHOLD


DEFAULT_THRESHOLDS = Thresholds()


def classify(value: float, low: float, high: float) -> StatusType:
    """Classify a glucose value.

    Values strictly below ``low`` are LOW, strictly above ``high`` are HIGH,
    and everything in between (bounds included) is OK.
    """
    if value < low:
        return StatusType.LOW
    if value > high:
        return StatusType.HIGH
    return StatusType.OK
