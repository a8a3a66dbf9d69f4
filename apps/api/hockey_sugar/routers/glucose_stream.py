"""Real-time athlete events via Server-Sent Events.

Relays the broker's events for one athlete (new readings, Dexcom
re-authentication prompts, messages) to a connected browser or device,
with periodic heartbeats.
"""

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.config import settings
from hockey_sugar.core.auth import CurrentUser, ensure_athlete_access
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import Broker
from hockey_sugar.logging_config import get_logger
from hockey_sugar.services.notifier import GlucoseEventBroker

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/glucose", tags=["glucose-stream"])


def format_sse_event(event_type: str, data: dict, event_id: str | None = None) -> str:
    """Format data as an SSE event.

    Args:
        event_type: The event type (e.g., 'glucose-update', 'heartbeat')
        data: Dictionary to serialize as JSON data
        event_id: Optional event ID for client tracking

    Returns:
        Formatted SSE event string
    """
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event_type}")
    lines.append(f"data: {json.dumps(data, default=str)}")
    lines.append("")
    return "\n".join(lines) + "\n"


async def generate_athlete_stream(
    broker: GlucoseEventBroker,
    athlete_id: uuid.UUID,
    request: Request,
    heartbeat_interval: float,
) -> AsyncGenerator[str, None]:
    """Yield SSE events for the athlete until the client disconnects.

    Starts with a ``connected`` event, then relays broker events as they
    arrive and sends a ``heartbeat`` after each quiet interval.
    """
    event_counter = 1
    logger.info("SSE stream started", athlete_id=str(athlete_id))

    try:
        async with broker.subscribe(athlete_id) as queue:
            yield format_sse_event(
                "connected",
                {
                    "athleteId": str(athlete_id),
                    "timestamp": datetime.now(UTC).isoformat(),
                },
                event_id=str(event_counter),
            )

            while True:
                if await request.is_disconnected():
                    logger.info("SSE client disconnected", athlete_id=str(athlete_id))
                    break

                try:
                    event = await asyncio.wait_for(
                        queue.get(), timeout=heartbeat_interval
                    )
                except TimeoutError:
                    event_counter += 1
                    yield format_sse_event(
                        "heartbeat",
                        {"timestamp": datetime.now(UTC).isoformat()},
                        event_id=str(event_counter),
                    )
                    continue

                event_counter += 1
                yield format_sse_event(
                    event.get("type", "message"),
                    event,
                    event_id=str(event_counter),
                )
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled", athlete_id=str(athlete_id))
        raise
    finally:
        logger.info("SSE stream ended", athlete_id=str(athlete_id))


@router.get(
    "/stream",
    responses={
        200: {
            "description": "SSE stream of athlete events",
            "content": {"text/event-stream": {}},
        },
        401: {"description": "Not authenticated"},
        403: {"description": "Not linked to athlete"},
    },
)
async def stream_glucose(
    request: Request,
    current_user: CurrentUser,
    broker: Broker,
    athlete_id: uuid.UUID | None = Query(
        default=None,
        description="Athlete to follow; defaults to the current user",
    ),
    db: AsyncSession = Depends(get_db),
) -> StreamingResponse:
    """Stream an athlete's events via Server-Sent Events.

    Event types:
    - `connected`: Sent once when the stream opens
    - `glucose-update`: A new reading was stored
    - `dexcom-auth-error`: The Dexcom connection needs to be re-authorized
    - `message`: A parent or coach sent a message (urgent for strobe alerts)
    - `heartbeat`: Keep-alive when nothing else happened
    """
    target_id = athlete_id or current_user.id
    await ensure_athlete_access(current_user, target_id, db)

    logger.info(
        "SSE stream requested",
        user_id=str(current_user.id),
        athlete_id=str(target_id),
    )

    return StreamingResponse(
        generate_athlete_stream(
            broker, target_id, request, settings.stream_heartbeat_seconds
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
