"""Tests for parent-to-athlete messages and strobe alerts."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from fakes import mock_db, mock_user

from hockey_sugar.core.auth import get_current_user
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import get_broker
from hockey_sugar.main import app
from hockey_sugar.models.message import Message
from hockey_sugar.services.messages import STROBE_MESSAGE
from hockey_sugar.services.notifier import MESSAGE, GlucoseEventBroker


@pytest.fixture
def broker() -> GlucoseEventBroker:
    return GlucoseEventBroker()


def make_message(receiver_id: uuid.UUID, is_urgent: bool = False, read=False):
    return Message(
        id=uuid.uuid4(),
        sender_id=uuid.uuid4(),
        receiver_id=receiver_id,
        content="Drink some juice",
        is_urgent=is_urgent,
        read=read,
        acknowledged_at=None,
        created_at=datetime.now(UTC),
    )


def db_assigning_ids(**kwargs):
    """A mocked session whose refresh() fills in the primary key."""
    db = mock_db(**kwargs)

    async def _refresh(obj):
        if obj.id is None:
            obj.id = uuid.uuid4()

    db.refresh = AsyncMock(side_effect=_refresh)
    return db


class TestSendMessage:
    async def test_requires_auth(self, client):
        response = await client.post(
            f"/api/athletes/{uuid.uuid4()}/messages", json={"content": "hi"}
        )
        assert response.status_code == 401

    async def test_linked_parent_sends_message(self, client, broker):
        parent = mock_user("parent")
        athlete_id = uuid.uuid4()
        db = db_assigning_ids(scalar=uuid.uuid4())
        app.dependency_overrides[get_current_user] = lambda: parent
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_broker] = lambda: broker

        async with broker.subscribe(athlete_id) as queue:
            response = await client.post(
                f"/api/athletes/{athlete_id}/messages",
                json={"content": "Great game!"},
            )
            event = queue.get_nowait()

        assert response.status_code == 201
        data = response.json()
        assert data["content"] == "Great game!"
        assert data["is_urgent"] is False
        assert data["read"] is False
        assert data["receiver_id"] == str(athlete_id)

        assert event["type"] == MESSAGE
        assert event["message"]["content"] == "Great game!"
        db.add.assert_called_once()
        db.commit.assert_awaited_once()

    async def test_empty_content_is_rejected(self, client, broker):
        app.dependency_overrides[get_current_user] = lambda: mock_user("parent")
        app.dependency_overrides[get_db] = lambda: mock_db(scalar=uuid.uuid4())
        app.dependency_overrides[get_broker] = lambda: broker

        response = await client.post(
            f"/api/athletes/{uuid.uuid4()}/messages", json={"content": ""}
        )

        assert response.status_code == 422

    async def test_unlinked_parent_is_forbidden(self, client, broker):
        db = mock_db(scalar=None)
        app.dependency_overrides[get_current_user] = lambda: mock_user("parent")
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_broker] = lambda: broker

        response = await client.post(
            f"/api/athletes/{uuid.uuid4()}/messages", json={"content": "hi"}
        )

        assert response.status_code == 403
        db.add.assert_not_called()


class TestStrobe:
    async def test_strobe_is_urgent(self, client, broker):
        coach = mock_user("coach")
        athlete_id = uuid.uuid4()
        app.dependency_overrides[get_current_user] = lambda: coach
        app.dependency_overrides[get_db] = lambda: db_assigning_ids(
            scalar=uuid.uuid4()
        )
        app.dependency_overrides[get_broker] = lambda: broker

        async with broker.subscribe(athlete_id) as queue:
            response = await client.post(f"/api/athletes/{athlete_id}/strobe")
            event = queue.get_nowait()

        assert response.status_code == 201
        data = response.json()
        assert data["content"] == STROBE_MESSAGE
        assert data["is_urgent"] is True
        assert event["message"]["isUrgent"] is True

    async def test_athlete_cannot_strobe(self, client, broker):
        athlete = mock_user("athlete")
        app.dependency_overrides[get_current_user] = lambda: athlete
        app.dependency_overrides[get_db] = lambda: mock_db()
        app.dependency_overrides[get_broker] = lambda: broker

        response = await client.post(f"/api/athletes/{uuid.uuid4()}/strobe")

        assert response.status_code == 403


class TestInbox:
    async def test_lists_messages_with_unread_count(self, client):
        athlete = mock_user("athlete")
        messages = [
            make_message(athlete.id),
            make_message(athlete.id, read=True),
            make_message(athlete.id, is_urgent=True),
        ]
        app.dependency_overrides[get_current_user] = lambda: athlete
        app.dependency_overrides[get_db] = lambda: mock_db(rows=messages)

        response = await client.get("/api/messages")

        assert response.status_code == 200
        data = response.json()
        assert len(data["messages"]) == 3
        assert data["unread_count"] == 2


class TestMarkRead:
    async def test_urgent_message_is_acknowledged(self, client):
        athlete = mock_user("athlete")
        message = make_message(athlete.id, is_urgent=True)
        app.dependency_overrides[get_current_user] = lambda: athlete
        app.dependency_overrides[get_db] = lambda: mock_db(scalar=message)

        response = await client.post(f"/api/messages/{message.id}/read")

        assert response.status_code == 200
        data = response.json()
        assert data["read"] is True
        assert data["acknowledged_at"] is not None

    async def test_plain_message_is_only_marked_read(self, client):
        athlete = mock_user("athlete")
        message = make_message(athlete.id)
        app.dependency_overrides[get_current_user] = lambda: athlete
        app.dependency_overrides[get_db] = lambda: mock_db(scalar=message)

        response = await client.post(f"/api/messages/{message.id}/read")

        assert response.json()["acknowledged_at"] is None

    async def test_unknown_message_returns_404(self, client):
        app.dependency_overrides[get_current_user] = lambda: mock_user("athlete")
        app.dependency_overrides[get_db] = lambda: mock_db(scalar=None)

        response = await client.post(f"/api/messages/{uuid.uuid4()}/read")

        assert response.status_code == 404
