"""Persistence for the Dexcom polling pipeline.

The pipeline talks to storage through the ``GlucoseStore`` protocol so
each poll cycle can run against its own database session, and tests can
run it against an in-memory store.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.core.encryption import decrypt_credential, encrypt_credential
from hockey_sugar.database import get_db_session
from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.dexcom_token import DexcomToken
from hockey_sugar.models.glucose import (
    GlucoseReading,
    GlucoseStatus,
    ReadingSource,
    StatusType,
)
from hockey_sugar.models.parent_athlete_link import ParentAthleteLink
from hockey_sugar.models.preferences import UserPreferences
from hockey_sugar.models.user import User, UserRole
from hockey_sugar.services.threshold_policy import Thresholds

logger = get_logger(__name__)


@dataclass
class StoredToken:
    """Decrypted Dexcom token pair for one athlete."""

    parent_id: uuid.UUID
    athlete_id: uuid.UUID
    access_token: str
    refresh_token: str
    expires_at: datetime
    needs_reauth: bool = False


@dataclass
class ReadingRecord:
    """A persisted reading together with its classification."""

    id: uuid.UUID
    athlete_id: uuid.UUID
    value: float
    unit: str
    recorded_at: datetime
    source: ReadingSource
    status: StatusType
    status_id: uuid.UUID
    recorded_by_id: uuid.UUID | None = None
    acknowledged_at: datetime | None = None

    @classmethod
    def from_model(cls, reading: GlucoseReading, status: StatusType) -> "ReadingRecord":
        return cls(
            id=reading.id,
            athlete_id=reading.athlete_id,
            value=reading.value,
            unit=reading.unit,
            recorded_at=reading.recorded_at,
            source=reading.source,
            status=status,
            status_id=reading.status_id,
            recorded_by_id=reading.recorded_by_id,
            acknowledged_at=reading.acknowledged_at,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready representation used in notification events."""
        return {
            "id": str(self.id),
            "athleteId": str(self.athlete_id),
            "value": self.value,
            "unit": self.unit,
            "recordedAt": self.recorded_at.isoformat(),
            "source": self.source.value,
            "status": self.status.value,
        }


class GlucoseStore(Protocol):
    """Storage operations the polling pipeline depends on."""

    async def get_token(self, athlete_id: uuid.UUID) -> StoredToken | None: ...

    async def save_token(self, token: StoredToken) -> None: ...

    async def mark_needs_reauth(self, athlete_id: uuid.UUID, reason: str) -> None: ...

    async def record_poll(
        self, athlete_id: uuid.UUID, polled_at: datetime, error: str | None
    ) -> None: ...

    async def get_preferences(self, user_id: uuid.UUID) -> Thresholds | None: ...

    async def get_parent_ids(self, athlete_id: uuid.UUID) -> list[uuid.UUID]: ...

    async def get_most_recent_reading(
        self, athlete_id: uuid.UUID, source: ReadingSource
    ) -> ReadingRecord | None: ...

    async def create_reading_with_status(
        self,
        athlete_id: uuid.UUID,
        value: float,
        unit: str,
        recorded_at: datetime,
        source: ReadingSource,
        status: StatusType,
        recorded_by_id: uuid.UUID | None,
    ) -> ReadingRecord: ...

    async def find_athletes(self) -> list[uuid.UUID]: ...


class SqlAlchemyGlucoseStore:
    """GlucoseStore backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_token(self, athlete_id: uuid.UUID) -> StoredToken | None:
        result = await self.db.execute(
            select(DexcomToken).where(DexcomToken.athlete_id == athlete_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return StoredToken(
            parent_id=row.parent_id,
            athlete_id=row.athlete_id,
            access_token=decrypt_credential(row.encrypted_access_token),
            refresh_token=decrypt_credential(row.encrypted_refresh_token),
            expires_at=row.expires_at,
            needs_reauth=row.needs_reauth,
        )

    async def save_token(self, token: StoredToken) -> None:
        """Upsert the athlete's token and clear any reauth flag."""
        values = {
            "parent_id": token.parent_id,
            "encrypted_access_token": encrypt_credential(token.access_token),
            "encrypted_refresh_token": encrypt_credential(token.refresh_token),
            "expires_at": token.expires_at,
            "needs_reauth": False,
            "last_error": None,
        }
        stmt = insert(DexcomToken).values(athlete_id=token.athlete_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["athlete_id"],
            set_={**values, "updated_at": func.now()},
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def mark_needs_reauth(self, athlete_id: uuid.UUID, reason: str) -> None:
        await self.db.execute(
            update(DexcomToken)
            .where(DexcomToken.athlete_id == athlete_id)
            .values(needs_reauth=True, last_error=reason)
        )
        await self.db.commit()

    async def record_poll(
        self, athlete_id: uuid.UUID, polled_at: datetime, error: str | None
    ) -> None:
        await self.db.execute(
            update(DexcomToken)
            .where(DexcomToken.athlete_id == athlete_id)
            .values(last_poll_at=polled_at, last_error=error)
        )
        await self.db.commit()

    async def get_preferences(self, user_id: uuid.UUID) -> Thresholds | None:
        result = await self.db.execute(
            select(UserPreferences).where(UserPreferences.user_id == user_id)
        )
        prefs = result.scalar_one_or_none()
        if prefs is None:
            return None
        return Thresholds(low=prefs.low_threshold, high=prefs.high_threshold)

    async def get_parent_ids(self, athlete_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(ParentAthleteLink.parent_id)
            .where(ParentAthleteLink.athlete_id == athlete_id)
            .order_by(ParentAthleteLink.created_at)
        )
        return list(result.scalars().all())

    async def get_most_recent_reading(
        self, athlete_id: uuid.UUID, source: ReadingSource
    ) -> ReadingRecord | None:
        result = await self.db.execute(
            select(GlucoseReading)
            .where(
                GlucoseReading.athlete_id == athlete_id,
                GlucoseReading.source == source,
            )
            .order_by(GlucoseReading.recorded_at.desc())
            .limit(1)
        )
        reading = result.scalars().first()
        if reading is None:
            return None
        return ReadingRecord.from_model(reading, reading.status.type)

    async def create_reading_with_status(
        self,
        athlete_id: uuid.UUID,
        value: float,
        unit: str,
        recorded_at: datetime,
        source: ReadingSource,
        status: StatusType,
        recorded_by_id: uuid.UUID | None,
    ) -> ReadingRecord:
        """Insert the status and its reading in a single transaction."""
        status_row = GlucoseStatus(athlete_id=athlete_id, type=status)
        self.db.add(status_row)
        await self.db.flush()

        reading = GlucoseReading(
            athlete_id=athlete_id,
            recorded_by_id=recorded_by_id,
            status_id=status_row.id,
            value=value,
            unit=unit,
            recorded_at=recorded_at,
            source=source,
            received_at=datetime.now(UTC),
        )
        self.db.add(reading)
        await self.db.commit()

        return ReadingRecord.from_model(reading, status)

    async def find_athletes(self) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(User.id).where(
                User.is_active.is_(True),
                or_(User.role == UserRole.ATHLETE, User.is_athlete.is_(True)),
            )
        )
        return list(result.scalars().all())


@asynccontextmanager
async def open_glucose_store() -> AsyncGenerator[GlucoseStore, None]:
    """Open a store on a fresh session; one per poll cycle."""
    async with get_db_session() as db:
        yield SqlAlchemyGlucoseStore(db)
