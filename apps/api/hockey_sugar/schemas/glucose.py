"""Glucose reading schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from hockey_sugar.models.glucose import ReadingSource, StatusType


class GlucoseReadingResponse(BaseModel):
    """A stored reading and its classification."""

    id: uuid.UUID
    athlete_id: uuid.UUID
    value: float
    unit: str
    recorded_at: datetime
    source: ReadingSource
    status: StatusType
    acknowledged_at: datetime | None = None

    @classmethod
    def from_reading(cls, reading) -> "GlucoseReadingResponse":
        """Build from a GlucoseReading model or a pipeline ReadingRecord."""
        status = reading.status
        return cls(
            id=reading.id,
            athlete_id=reading.athlete_id,
            value=reading.value,
            unit=reading.unit,
            recorded_at=reading.recorded_at,
            source=reading.source,
            status=status if isinstance(status, StatusType) else status.type,
            acknowledged_at=reading.acknowledged_at,
        )


class ManualReadingRequest(BaseModel):
    """Manual entry by a parent or coach.

    ``value`` is accepted as text so that non-numeric input is rejected
    by the glucose service with a 400 rather than a schema error.
    """

    value: float | str | None = Field(default=None, description="Glucose value")
    unit: str = Field(default="mg/dL", max_length=16)


class WebhookReadingRequest(BaseModel):
    """Reading pushed by an external integration."""

    value: float = Field(gt=0, description="Glucose value")
    timestamp: datetime = Field(description="When the reading was taken")
    unit: str = Field(default="mg/dL", max_length=16)
    trend: str | None = None


class GlucoseHistoryResponse(BaseModel):
    readings: list[GlucoseReadingResponse]
    count: int


class AthleteStatusResponse(BaseModel):
    """What the athlete's device shows."""

    athlete_id: uuid.UUID
    status: StatusType | None
    reading: GlucoseReadingResponse | None
    needs_acknowledgement: bool


class AthleteSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    latest_reading: GlucoseReadingResponse | None = None


class PollResultResponse(BaseModel):
    """Result of a manual refresh or webhook ingest."""

    success: bool
    no_new_data: bool = False
    needs_reauth: bool = False
    error: str | None = None
    message: str
    status: StatusType | None = None
    reading: GlucoseReadingResponse | None = None

    @classmethod
    def from_result(cls, result, message: str) -> "PollResultResponse":
        return cls(
            success=result.success,
            no_new_data=result.no_new_data,
            needs_reauth=result.needs_reauth,
            error=result.error,
            message=message,
            status=result.status,
            reading=(
                GlucoseReadingResponse.from_reading(result.reading)
                if result.reading is not None
                else None
            ),
        )
