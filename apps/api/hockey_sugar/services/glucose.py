"""Glucose history, status and acknowledgement queries.

Also validates manually entered values before they reach the pipeline.
"""

import math
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.glucose import GlucoseReading, GlucoseStatus, StatusType
from hockey_sugar.models.parent_athlete_link import ParentAthleteLink
from hockey_sugar.models.user import User

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 500


class ReadingValidationError(ValueError):
    """A manually entered reading was rejected."""

    pass


def parse_glucose_value(raw: float | int | str | None) -> float:
    """Convert user input into a glucose value.

    Raises:
        ReadingValidationError: Missing, non-numeric, non-finite or
            non-positive input
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ReadingValidationError("Glucose value is required")
    if isinstance(raw, bool):
        raise ReadingValidationError("Invalid glucose value")

    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise ReadingValidationError("Invalid glucose value") from e

    if not math.isfinite(value):
        raise ReadingValidationError("Invalid glucose value")
    if value <= 0:
        raise ReadingValidationError("Glucose value must be positive")
    return value


async def is_linked(
    db: AsyncSession, parent_id: uuid.UUID, athlete_id: uuid.UUID
) -> bool:
    result = await db.execute(
        select(ParentAthleteLink.id).where(
            ParentAthleteLink.parent_id == parent_id,
            ParentAthleteLink.athlete_id == athlete_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def get_linked_athletes(db: AsyncSession, parent_id: uuid.UUID) -> list[User]:
    result = await db.execute(
        select(User)
        .join(ParentAthleteLink, ParentAthleteLink.athlete_id == User.id)
        .where(ParentAthleteLink.parent_id == parent_id)
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def get_latest_reading(
    db: AsyncSession, athlete_id: uuid.UUID
) -> GlucoseReading | None:
    """Most recent reading for the athlete from any source."""
    result = await db.execute(
        select(GlucoseReading)
        .where(GlucoseReading.athlete_id == athlete_id)
        .order_by(GlucoseReading.recorded_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_reading_history(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[GlucoseReading]:
    """Newest-first readings with their status, capped at MAX_HISTORY_LIMIT."""
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    result = await db.execute(
        select(GlucoseReading)
        .where(GlucoseReading.athlete_id == athlete_id)
        .order_by(GlucoseReading.recorded_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def acknowledge_low(
    db: AsyncSession, athlete_id: uuid.UUID
) -> GlucoseReading | None:
    """Acknowledge the athlete's latest reading if it is an open LOW.

    Returns:
        The acknowledged reading, or None if there is nothing to acknowledge
    """
    result = await db.execute(
        select(GlucoseReading)
        .join(GlucoseStatus, GlucoseStatus.id == GlucoseReading.status_id)
        .where(GlucoseReading.athlete_id == athlete_id)
        .order_by(GlucoseReading.recorded_at.desc())
        .limit(1)
    )
    reading = result.scalars().first()
    if (
        reading is None
        or reading.status.type != StatusType.LOW
        or reading.acknowledged_at is not None
    ):
        return None

    now = datetime.now(UTC)
    reading.acknowledged_at = now
    reading.status.acknowledged_at = now
    await db.commit()

    logger.info(
        "LOW reading acknowledged",
        athlete_id=str(athlete_id),
        reading_id=str(reading.id),
    )
    return reading
