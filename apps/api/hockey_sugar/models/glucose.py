"""Glucose reading and status models.

Every accepted reading gets its own status row holding the LOW/OK/HIGH
classification made at ingestion time.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hockey_sugar.models.base import Base, TimestampMixin


class StatusType(str, enum.Enum):
    """Glucose classification against the low/high thresholds."""

    LOW = "LOW"
    OK = "OK"
    HIGH = "HIGH"


class ReadingSource(str, enum.Enum):
    """Where a glucose reading came from."""

    MANUAL = "manual"
    DEXCOM = "dexcom"


class GlucoseStatus(Base, TimestampMixin):
    """Classification attached to a reading; athletes acknowledge LOWs here."""

    __tablename__ = "glucose_statuses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[StatusType] = mapped_column(
        Enum(
            StatusType,
            name="statustype",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reading = relationship("GlucoseReading", back_populates="status", uselist=False)

    def __repr__(self) -> str:
        return f"<GlucoseStatus(athlete_id={self.athlete_id}, type={self.type.value})>"


class GlucoseReading(Base):
    """A single glucose value for an athlete.

    Readings are immutable once written, apart from acknowledged_at.
    """

    __tablename__ = "glucose_readings"
    __table_args__ = (
        Index(
            "ix_glucose_readings_athlete_source_recorded",
            "athlete_id",
            "source",
            "recorded_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recorded_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("glucose_statuses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default="mg/dL")

    # Timestamp reported by the device (or the entry time for manual readings)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    source: Mapped[ReadingSource] = mapped_column(
        Enum(
            ReadingSource,
            name="readingsource",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    status = relationship("GlucoseStatus", back_populates="reading", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<GlucoseReading(athlete_id={self.athlete_id}, value={self.value}, "
            f"source={self.source.value}, recorded_at={self.recorded_at})>"
        )
