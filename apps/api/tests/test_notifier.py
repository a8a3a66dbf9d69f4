"""Tests for the in-process glucose event broker."""

import uuid
from datetime import UTC, datetime

from hockey_sugar.models.glucose import ReadingSource, StatusType
from hockey_sugar.services.glucose_store import ReadingRecord
from hockey_sugar.services.notifier import (
    DEXCOM_AUTH_ERROR,
    DEXCOM_AUTH_ERROR_MESSAGE,
    GLUCOSE_UPDATE,
    GlucoseEventBroker,
    dexcom_auth_error_event,
    glucose_update_event,
    message_event,
)


def make_record(athlete_id: uuid.UUID) -> ReadingRecord:
    return ReadingRecord(
        id=uuid.uuid4(),
        athlete_id=athlete_id,
        value=65.0,
        unit="mg/dL",
        recorded_at=datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
        source=ReadingSource.DEXCOM,
        status=StatusType.LOW,
        status_id=uuid.uuid4(),
    )


class TestEventBuilders:
    def test_glucose_update_payload(self):
        athlete_id = uuid.uuid4()
        record = make_record(athlete_id)

        event = glucose_update_event(athlete_id, record)

        assert event["type"] == GLUCOSE_UPDATE
        assert event["athleteId"] == str(athlete_id)
        assert event["reading"] == {
            "id": str(record.id),
            "athleteId": str(athlete_id),
            "value": 65.0,
            "unit": "mg/dL",
            "recordedAt": "2025-03-01T12:00:00+00:00",
            "source": "dexcom",
            "status": "LOW",
        }

    def test_auth_error_payload(self):
        athlete_id = uuid.uuid4()

        event = dexcom_auth_error_event(athlete_id)

        assert event["type"] == DEXCOM_AUTH_ERROR
        assert event["message"] == DEXCOM_AUTH_ERROR_MESSAGE

    def test_message_payload(self):
        event = message_event(uuid.uuid4(), {"content": "Check in"})
        assert event["type"] == "message"
        assert event["message"]["content"] == "Check in"


class TestGlucoseEventBroker:
    async def test_publish_reaches_subscriber(self):
        broker = GlucoseEventBroker()
        athlete_id = uuid.uuid4()

        async with broker.subscribe(athlete_id) as queue:
            delivered = await broker.publish(athlete_id, {"type": "x"})
            assert delivered == 1
            assert queue.get_nowait() == {"type": "x"}

    async def test_events_are_scoped_per_athlete(self):
        broker = GlucoseEventBroker()
        watched, other = uuid.uuid4(), uuid.uuid4()

        async with broker.subscribe(watched) as queue:
            delivered = await broker.publish(other, {"type": "x"})
            assert delivered == 0
            assert queue.empty()

    async def test_every_subscriber_gets_the_event(self):
        broker = GlucoseEventBroker()
        athlete_id = uuid.uuid4()

        async with broker.subscribe(athlete_id) as first:
            async with broker.subscribe(athlete_id) as second:
                assert broker.subscriber_count(athlete_id) == 2
                await broker.publish(athlete_id, {"type": "x"})
                assert first.qsize() == 1
                assert second.qsize() == 1

    async def test_unsubscribe_on_exit(self):
        broker = GlucoseEventBroker()
        athlete_id = uuid.uuid4()

        async with broker.subscribe(athlete_id):
            pass

        assert broker.subscriber_count(athlete_id) == 0
        assert await broker.publish(athlete_id, {"type": "x"}) == 0

    async def test_full_queue_drops_event(self):
        broker = GlucoseEventBroker(queue_size=1)
        athlete_id = uuid.uuid4()

        async with broker.subscribe(athlete_id) as queue:
            assert await broker.publish(athlete_id, {"type": "first"}) == 1
            assert await broker.publish(athlete_id, {"type": "second"}) == 0
            assert queue.get_nowait() == {"type": "first"}

    async def test_closed_broker_publishes_nothing(self):
        broker = GlucoseEventBroker()
        athlete_id = uuid.uuid4()

        async with broker.subscribe(athlete_id):
            broker.close()
            assert await broker.publish(athlete_id, {"type": "x"}) == 0
