"""Tests for manual entry, history, athlete status and LOW acknowledgement."""

import uuid

import pytest
from fakes import (
    FakeDexcom,
    InMemoryGlucoseStore,
    mock_db,
    mock_reading,
    mock_user,
)

from hockey_sugar.core.auth import get_current_user
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import get_pipeline
from hockey_sugar.main import app
from hockey_sugar.models.glucose import ReadingSource, StatusType
from hockey_sugar.services.glucose import (
    MAX_HISTORY_LIMIT,
    ReadingValidationError,
    parse_glucose_value,
)
from hockey_sugar.services.notifier import GlucoseEventBroker
from hockey_sugar.services.polling import GlucosePipeline


@pytest.fixture
def store() -> InMemoryGlucoseStore:
    return InMemoryGlucoseStore()


@pytest.fixture
def broker() -> GlucoseEventBroker:
    return GlucoseEventBroker()


@pytest.fixture
def pipeline(store, broker) -> GlucosePipeline:
    return GlucosePipeline(
        store_factory=store.open,
        client=FakeDexcom().client(),
        broker=broker,
    )


def authenticate(user, db) -> None:
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_db] = lambda: db


class TestParseGlucoseValue:
    def test_accepts_numbers(self):
        assert parse_glucose_value(120) == 120.0
        assert parse_glucose_value(85.5) == 85.5

    def test_accepts_numeric_strings(self):
        assert parse_glucose_value(" 95 ") == 95.0

    @pytest.mark.parametrize("raw", ["abc", "12mg", "nan", "inf", True])
    def test_rejects_non_numeric(self, raw):
        with pytest.raises(ReadingValidationError, match="Invalid glucose value"):
            parse_glucose_value(raw)

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_rejects_missing(self, raw):
        with pytest.raises(ReadingValidationError, match="required"):
            parse_glucose_value(raw)

    @pytest.mark.parametrize("raw", [0, -5, "-1"])
    def test_rejects_non_positive(self, raw):
        with pytest.raises(ReadingValidationError, match="positive"):
            parse_glucose_value(raw)


class TestManualEntry:
    async def test_requires_auth(self, client):
        response = await client.post(
            f"/api/athletes/{uuid.uuid4()}/glucose", json={"value": 120}
        )
        assert response.status_code == 401

    async def test_invalid_value_is_rejected_without_side_effects(
        self, client, store, broker, pipeline
    ):
        parent = mock_user("parent")
        athlete_id = uuid.uuid4()
        authenticate(parent, mock_db(scalar=uuid.uuid4()))
        app.dependency_overrides[get_pipeline] = lambda: pipeline

        async with broker.subscribe(athlete_id) as queue:
            response = await client.post(
                f"/api/athletes/{athlete_id}/glucose", json={"value": "abc"}
            )
            assert queue.empty()

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid glucose value"
        assert store.readings == []

    async def test_missing_value_is_rejected(self, client, store, pipeline):
        authenticate(mock_user("parent"), mock_db(scalar=uuid.uuid4()))
        app.dependency_overrides[get_pipeline] = lambda: pipeline

        response = await client.post(f"/api/athletes/{uuid.uuid4()}/glucose", json={})

        assert response.status_code == 400
        assert store.readings == []

    async def test_valid_value_is_stored_and_published(
        self, client, store, broker, pipeline
    ):
        parent = mock_user("parent")
        athlete_id = uuid.uuid4()
        authenticate(parent, mock_db(scalar=uuid.uuid4()))
        app.dependency_overrides[get_pipeline] = lambda: pipeline

        async with broker.subscribe(athlete_id) as queue:
            response = await client.post(
                f"/api/athletes/{athlete_id}/glucose", json={"value": "62"}
            )
            assert queue.qsize() == 1

        assert response.status_code == 201
        data = response.json()
        assert data["value"] == 62.0
        assert data["status"] == "LOW"
        assert data["source"] == "manual"

        readings = store.readings_for(athlete_id)
        assert len(readings) == 1
        assert readings[0].source == ReadingSource.MANUAL
        assert readings[0].recorded_by_id == parent.id

    async def test_unlinked_parent_is_forbidden(self, client, store, pipeline):
        authenticate(mock_user("parent"), mock_db(scalar=None))
        app.dependency_overrides[get_pipeline] = lambda: pipeline

        response = await client.post(
            f"/api/athletes/{uuid.uuid4()}/glucose", json={"value": 120}
        )

        assert response.status_code == 403
        assert store.readings == []

    async def test_athlete_cannot_enter_values(self, client, pipeline):
        athlete = mock_user("athlete")
        authenticate(athlete, mock_db())
        app.dependency_overrides[get_pipeline] = lambda: pipeline

        response = await client.post(
            f"/api/athletes/{athlete.id}/glucose", json={"value": 120}
        )

        assert response.status_code == 403


class TestHistory:
    async def test_athlete_reads_own_history(self, client):
        athlete = mock_user("athlete")
        readings = [
            mock_reading(athlete.id, 140),
            mock_reading(athlete.id, 65, StatusType.LOW),
        ]
        authenticate(athlete, mock_db(rows=readings))

        response = await client.get("/api/glucose/history")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert [r["status"] for r in data["readings"]] == ["OK", "LOW"]

    async def test_unlinked_parent_is_forbidden(self, client):
        authenticate(mock_user("parent"), mock_db(scalar=None))

        response = await client.get(
            "/api/glucose/history", params={"athlete_id": str(uuid.uuid4())}
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "You are not linked to this athlete"

    async def test_limit_is_capped(self, client):
        authenticate(mock_user("athlete"), mock_db())

        response = await client.get(
            "/api/glucose/history", params={"limit": MAX_HISTORY_LIMIT + 1}
        )

        assert response.status_code == 422


class TestAthleteStatus:
    async def test_no_readings(self, client):
        authenticate(mock_user("athlete"), mock_db(first=None))

        response = await client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] is None
        assert data["needs_acknowledgement"] is False

    async def test_open_low_needs_acknowledgement(self, client):
        athlete = mock_user("athlete")
        reading = mock_reading(athlete.id, 60, StatusType.LOW)
        authenticate(athlete, mock_db(first=reading))

        response = await client.get("/api/status")

        data = response.json()
        assert data["status"] == "LOW"
        assert data["needs_acknowledgement"] is True

    async def test_parent_cannot_use_athlete_status(self, client):
        authenticate(mock_user("parent"), mock_db())

        response = await client.get("/api/status")

        assert response.status_code == 403


class TestAcknowledge:
    async def test_acknowledges_open_low(self, client):
        athlete = mock_user("athlete")
        reading = mock_reading(athlete.id, 60, StatusType.LOW)
        db = mock_db(first=reading)
        authenticate(athlete, db)

        response = await client.post("/api/status/acknowledge")

        assert response.status_code == 200
        assert response.json()["acknowledged_at"] is not None
        assert reading.status.acknowledged_at is not None
        db.commit.assert_awaited_once()

    async def test_ok_reading_has_nothing_to_acknowledge(self, client):
        athlete = mock_user("athlete")
        db = mock_db(first=mock_reading(athlete.id, 120, StatusType.OK))
        authenticate(athlete, db)

        response = await client.post("/api/status/acknowledge")

        assert response.status_code == 404
        db.commit.assert_not_awaited()


class TestListAthletes:
    async def test_lists_linked_athletes_with_latest_reading(self, client):
        parent = mock_user("parent")
        athlete = mock_user("athlete")
        reading = mock_reading(athlete.id, 190, StatusType.HIGH)
        authenticate(parent, mock_db(rows=[athlete], first=reading))

        response = await client.get("/api/athletes")

        assert response.status_code == 200
        data = response.json()
        assert data[0]["id"] == str(athlete.id)
        assert data[0]["latest_reading"]["status"] == "HIGH"
