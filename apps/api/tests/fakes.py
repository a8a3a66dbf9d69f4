"""In-memory stand-ins for the database store and the Dexcom API."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx

from hockey_sugar.models.glucose import GlucoseReading, ReadingSource, StatusType
from hockey_sugar.models.user import User, UserRole
from hockey_sugar.services.dexcom_client import EGVS_PATH, TOKEN_PATH, DexcomClient
from hockey_sugar.services.glucose_store import ReadingRecord, StoredToken
from hockey_sugar.services.threshold_policy import Thresholds

DEXCOM_BASE_URL = "https://sandbox-api.dexcom.com"


class InMemoryGlucoseStore:
    """GlucoseStore keeping everything in dicts and lists.

    ``open`` is the store factory handed to the pipeline; every cycle sees
    the same data.
    """

    def __init__(self):
        self.tokens: dict[uuid.UUID, StoredToken] = {}
        self.readings: list[ReadingRecord] = []
        self.preferences: dict[uuid.UUID, Thresholds] = {}
        self.parents: dict[uuid.UUID, list[uuid.UUID]] = {}
        self.athletes: list[uuid.UUID] = []
        self.polls: list[tuple[uuid.UUID, datetime, str | None]] = []
        self.reauth_reasons: dict[uuid.UUID, str] = {}
        self.fail_on_create = False

    @asynccontextmanager
    async def open(self) -> AsyncGenerator["InMemoryGlucoseStore", None]:
        yield self

    def add_token(
        self,
        athlete_id: uuid.UUID,
        parent_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
        needs_reauth: bool = False,
    ) -> StoredToken:
        token = StoredToken(
            parent_id=parent_id or uuid.uuid4(),
            athlete_id=athlete_id,
            access_token="access-initial",
            refresh_token="refresh-initial",
            expires_at=expires_at or datetime.now(UTC) + timedelta(hours=2),
            needs_reauth=needs_reauth,
        )
        self.tokens[athlete_id] = token
        return token

    def add_reading(
        self,
        athlete_id: uuid.UUID,
        value: float,
        recorded_at: datetime,
        source: ReadingSource = ReadingSource.DEXCOM,
        status: StatusType = StatusType.OK,
    ) -> ReadingRecord:
        record = ReadingRecord(
            id=uuid.uuid4(),
            athlete_id=athlete_id,
            value=value,
            unit="mg/dL",
            recorded_at=recorded_at,
            source=source,
            status=status,
            status_id=uuid.uuid4(),
        )
        self.readings.append(record)
        return record

    def readings_for(self, athlete_id: uuid.UUID) -> list[ReadingRecord]:
        return [r for r in self.readings if r.athlete_id == athlete_id]

    async def get_token(self, athlete_id: uuid.UUID) -> StoredToken | None:
        token = self.tokens.get(athlete_id)
        if token is None:
            return None
        return StoredToken(**vars(token))

    async def save_token(self, token: StoredToken) -> None:
        self.tokens[token.athlete_id] = StoredToken(**vars(token))
        self.reauth_reasons.pop(token.athlete_id, None)

    async def mark_needs_reauth(self, athlete_id: uuid.UUID, reason: str) -> None:
        if athlete_id in self.tokens:
            self.tokens[athlete_id].needs_reauth = True
        self.reauth_reasons[athlete_id] = reason

    async def record_poll(
        self, athlete_id: uuid.UUID, polled_at: datetime, error: str | None
    ) -> None:
        self.polls.append((athlete_id, polled_at, error))

    async def get_preferences(self, user_id: uuid.UUID) -> Thresholds | None:
        return self.preferences.get(user_id)

    async def get_parent_ids(self, athlete_id: uuid.UUID) -> list[uuid.UUID]:
        return list(self.parents.get(athlete_id, []))

    async def get_most_recent_reading(
        self, athlete_id: uuid.UUID, source: ReadingSource
    ) -> ReadingRecord | None:
        matching = [
            r
            for r in self.readings
            if r.athlete_id == athlete_id and r.source == source
        ]
        if not matching:
            return None
        return max(matching, key=lambda r: r.recorded_at)

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
        if self.fail_on_create:
            raise RuntimeError("database unavailable")
        record = ReadingRecord(
            id=uuid.uuid4(),
            athlete_id=athlete_id,
            value=value,
            unit=unit,
            recorded_at=recorded_at,
            source=source,
            status=status,
            status_id=uuid.uuid4(),
            recorded_by_id=recorded_by_id,
        )
        self.readings.append(record)
        return record

    async def find_athletes(self) -> list[uuid.UUID]:
        return list(self.athletes)


def egv_record(
    value: float,
    system_time: datetime,
    unit: str = "mg/dL",
    utc_offset: timedelta = timedelta(0),
) -> dict:
    """An EGV record shaped like the Dexcom v3 response.

    ``systemTime`` is UTC with a trailing Z; ``displayTime`` is the
    zoneless device wall time, ``utc_offset`` away from it.
    """
    utc = system_time.astimezone(UTC).replace(tzinfo=None)
    return {
        "recordId": uuid.uuid4().hex,
        "systemTime": utc.isoformat() + "Z",
        "displayTime": (utc + utc_offset).isoformat(),
        "value": value,
        "unit": unit,
        "trend": "flat",
    }


class FakeDexcom:
    """Scriptable Dexcom API served through ``httpx.MockTransport``."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_error: dict = {
            "error": "invalid_grant",
            "error_description": "Refresh token is invalid",
        }
        self.expires_in = 7200
        self.issued = 0
        self.egv_status = 200
        self.egv_error: dict = {"message": "Internal error"}
        self.egv_records: list[dict] = []
        self.raise_timeout = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_timeout:
            raise httpx.ConnectTimeout("timed out", request=request)

        if request.url.path == TOKEN_PATH:
            if self.token_status != 200:
                return httpx.Response(self.token_status, json=self.token_error)
            self.issued += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{self.issued}",
                    "refresh_token": f"refresh-{self.issued}",
                    "expires_in": self.expires_in,
                    "token_type": "Bearer",
                },
            )

        if request.url.path == EGVS_PATH:
            if self.egv_status != 200:
                return httpx.Response(self.egv_status, json=self.egv_error)
            return httpx.Response(200, json={"records": self.egv_records})

        return httpx.Response(404)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def client(self) -> DexcomClient:
        return DexcomClient(
            base_url=DEXCOM_BASE_URL,
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="http://localhost:8000/api/dexcom/callback",
            timeout=2.0,
            transport=httpx.MockTransport(self.handler),
        )


class FixedClock:
    """Controllable replacement for the pipeline clock."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def unique_email(prefix: str = "test") -> str:
    """Generate a unique email for testing."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}@example.com"


def mock_user(role: str = "parent", is_admin: bool = False) -> MagicMock:
    """A stand-in for an authenticated User row."""
    user = MagicMock(spec=User)
    user.id = uuid.uuid4()
    user.email = unique_email(role)
    user.name = f"Test {role.title()}"
    user.role = UserRole(role)
    user.is_admin = is_admin
    user.is_athlete = role == "athlete"
    user.is_active = True
    return user


def mock_db(scalar=None, first=None, rows: list | None = None) -> AsyncMock:
    """An AsyncSession whose every query returns the given values.

    Args:
        scalar: Result of ``scalar_one_or_none()`` (link checks, lookups)
        first: Result of ``scalars().first()``
        rows: Result of ``scalars().all()``
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.first.return_value = first
    result.scalars.return_value.all.return_value = rows or []
    result.rowcount = 1

    db = AsyncMock()
    db.execute = AsyncMock(return_value=result)
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.add = MagicMock()
    return db


def mock_reading(
    athlete_id: uuid.UUID,
    value: float = 110.0,
    status: StatusType = StatusType.OK,
    source: ReadingSource = ReadingSource.DEXCOM,
) -> MagicMock:
    """A GlucoseReading row with its joined GlucoseStatus."""
    reading = MagicMock(spec=GlucoseReading)
    reading.id = uuid.uuid4()
    reading.athlete_id = athlete_id
    reading.value = value
    reading.unit = "mg/dL"
    reading.recorded_at = datetime.now(UTC)
    reading.source = source
    reading.acknowledged_at = None
    reading.status = MagicMock()
    reading.status.type = status
    reading.status.acknowledged_at = None
    return reading
