"""Parent-to-athlete messages and strobe alerts."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.message import Message
from hockey_sugar.services.notifier import GlucoseEventBroker, message_event

logger = get_logger(__name__)

STROBE_MESSAGE = "⚠️ STROBE ALERT! PLEASE CHECK YOUR PHONE IMMEDIATELY!"
INBOX_LIMIT = 50


def message_payload(message: Message) -> dict:
    return {
        "id": str(message.id),
        "senderId": str(message.sender_id),
        "content": message.content,
        "isUrgent": message.is_urgent,
        "read": message.read,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


async def send_message(
    db: AsyncSession,
    broker: GlucoseEventBroker,
    sender_id: uuid.UUID,
    athlete_id: uuid.UUID,
    content: str,
    is_urgent: bool = False,
) -> Message:
    """Store a message and push it onto the athlete's event stream."""
    message = Message(
        sender_id=sender_id,
        receiver_id=athlete_id,
        content=content,
        is_urgent=is_urgent,
        read=False,
        created_at=datetime.now(UTC),
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)

    await broker.publish(
        athlete_id, message_event(athlete_id, message_payload(message))
    )

    logger.info(
        "Message sent",
        sender_id=str(sender_id),
        athlete_id=str(athlete_id),
        is_urgent=is_urgent,
    )
    return message


async def send_strobe(
    db: AsyncSession,
    broker: GlucoseEventBroker,
    sender_id: uuid.UUID,
    athlete_id: uuid.UUID,
) -> Message:
    """Send the urgent strobe alert."""
    return await send_message(
        db, broker, sender_id, athlete_id, STROBE_MESSAGE, is_urgent=True
    )


async def get_inbox(
    db: AsyncSession, user_id: uuid.UUID, limit: int = INBOX_LIMIT
) -> list[Message]:
    result = await db.execute(
        select(Message)
        .where(Message.receiver_id == user_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession, message_id: uuid.UUID, receiver_id: uuid.UUID
) -> Message | None:
    """Mark a received message read; urgent ones are also acknowledged.

    Returns:
        The updated message, or None if it does not exist for this receiver
    """
    result = await db.execute(
        select(Message).where(
            Message.id == message_id,
            Message.receiver_id == receiver_id,
        )
    )
    message = result.scalar_one_or_none()
    if message is None:
        return None

    message.read = True
    if message.is_urgent and message.acknowledged_at is None:
        message.acknowledged_at = datetime.now(UTC)
    await db.commit()
    await db.refresh(message)
    return message
