"""In-process publish/subscribe of glucose events per athlete.

One broker is created per application in the lifespan handler and kept on
``app.state``. SSE connections subscribe with a bounded queue; the pipeline
and the message service publish to it.
"""

import asyncio
import uuid
from collections import defaultdict
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from hockey_sugar.logging_config import get_logger
from hockey_sugar.services.glucose_store import ReadingRecord

logger = get_logger(__name__)

GLUCOSE_UPDATE = "glucose-update"
DEXCOM_AUTH_ERROR = "dexcom-auth-error"
MESSAGE = "message"

DEXCOM_AUTH_ERROR_MESSAGE = "Dexcom connection expired. Please reconnect."


def glucose_update_event(
    athlete_id: uuid.UUID, reading: ReadingRecord
) -> dict[str, Any]:
    return {
        "type": GLUCOSE_UPDATE,
        "athleteId": str(athlete_id),
        "reading": reading.to_payload(),
    }


def dexcom_auth_error_event(athlete_id: uuid.UUID) -> dict[str, Any]:
    return {
        "type": DEXCOM_AUTH_ERROR,
        "athleteId": str(athlete_id),
        "message": DEXCOM_AUTH_ERROR_MESSAGE,
    }


def message_event(athlete_id: uuid.UUID, message: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": MESSAGE,
        "athleteId": str(athlete_id),
        "message": message,
    }


class GlucoseEventBroker:
    """Fan-out of events to the subscribers of each athlete."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[uuid.UUID, set[asyncio.Queue]] = defaultdict(set)
        self._closed = False

    def subscriber_count(self, athlete_id: uuid.UUID) -> int:
        return len(self._subscribers.get(athlete_id, ()))

    @asynccontextmanager
    async def subscribe(
        self, athlete_id: uuid.UUID
    ) -> AsyncGenerator[asyncio.Queue, None]:
        """Register a queue for the athlete's events until the block exits."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[athlete_id].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(athlete_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[athlete_id]

    async def publish(self, athlete_id: uuid.UUID, event: dict[str, Any]) -> int:
        """Deliver an event to every current subscriber of the athlete.

        Returns:
            The number of subscribers that received the event
        """
        if self._closed:
            return 0

        delivered = 0
        for queue in list(self._subscribers.get(athlete_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping event for slow subscriber",
                    athlete_id=str(athlete_id),
                    event_type=event.get("type"),
                )

        logger.debug(
            "Published event",
            athlete_id=str(athlete_id),
            event_type=event.get("type"),
            subscribers=delivered,
        )
        return delivered

    def close(self) -> None:
        """Stop accepting events and drop all subscriptions."""
        self._closed = True
        self._subscribers.clear()
