"""Duplicate suppression for polled and pushed readings.

A candidate is a duplicate when it is not newer than the athlete's last
reading from the same source, or when it has (nearly) the same value and
was recorded within the window after that reading. A repeated value after
a long gap, such as a flat overnight trace, is accepted as a new reading.

Both timestamps are provider record times, so a provider lagging behind
the wall clock still yields one stored reading per record.
"""

from datetime import datetime, timedelta

DEFAULT_DEDUP_WINDOW = timedelta(minutes=5)
DEFAULT_DEDUP_EPSILON = 0.1


def is_duplicate(
    candidate_value: float,
    candidate_recorded_at: datetime,
    last_value: float | None,
    last_recorded_at: datetime | None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
    epsilon: float = DEFAULT_DEDUP_EPSILON,
) -> bool:
    """Return True if the candidate repeats the last known reading.

    Args:
        candidate_value: Value of the newly fetched reading
        candidate_recorded_at: When the provider recorded it
        last_value: Value of the most recent persisted reading, if any
        last_recorded_at: When that reading was recorded
        window: How long after the last reading a matching value still counts
        epsilon: Largest difference treated as "the same value"
    """
    if last_value is None or last_recorded_at is None:
        return False
    if candidate_recorded_at <= last_recorded_at:
        return True
    if abs(candidate_value - last_value) >= epsilon:
        return False
    return candidate_recorded_at - last_recorded_at <= window
