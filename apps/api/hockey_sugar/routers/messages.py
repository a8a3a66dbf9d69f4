"""Messages router: inbox, sending, strobe alerts and read receipts."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.core.auth import CurrentUser, ParentUser, ensure_athlete_access
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import Broker
from hockey_sugar.logging_config import get_logger
from hockey_sugar.middleware.rate_limit import STROBE_LIMIT, limiter
from hockey_sugar.schemas.common import ErrorResponse
from hockey_sugar.schemas.message import InboxResponse, MessageCreate, MessageResponse
from hockey_sugar.services.messages import (
    get_inbox,
    mark_read,
    send_message,
    send_strobe,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["messages"])


@router.get("/messages", response_model=InboxResponse)
async def list_messages(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> InboxResponse:
    """Messages received by the current user, newest first."""
    messages = await get_inbox(db, current_user.id)
    return InboxResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        unread_count=sum(1 for m in messages if not m.read),
    )


@router.post(
    "/athletes/{athlete_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse, "description": "Not linked to athlete"}},
)
async def create_message(
    athlete_id: uuid.UUID,
    body: MessageCreate,
    current_user: ParentUser,
    broker: Broker,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send a message to a linked athlete."""
    await ensure_athlete_access(current_user, athlete_id, db)
    message = await send_message(
        db,
        broker,
        sender_id=current_user.id,
        athlete_id=athlete_id,
        content=body.content,
        is_urgent=body.is_urgent,
    )
    return MessageResponse.model_validate(message)


@router.post(
    "/athletes/{athlete_id}/strobe",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse, "description": "Not linked to athlete"}},
)
@limiter.limit(STROBE_LIMIT)
async def create_strobe(
    request: Request,
    athlete_id: uuid.UUID,
    current_user: ParentUser,
    broker: Broker,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send an urgent strobe alert to a linked athlete."""
    await ensure_athlete_access(current_user, athlete_id, db)
    message = await send_strobe(
        db, broker, sender_id=current_user.id, athlete_id=athlete_id
    )
    logger.warning(
        "Strobe alert sent",
        sender_id=str(current_user.id),
        athlete_id=str(athlete_id),
    )
    return MessageResponse.model_validate(message)


@router.post(
    "/messages/{message_id}/read",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "Message not found"}},
)
async def read_message(
    message_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Mark a received message as read."""
    message = await mark_read(db, message_id, current_user.id)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return MessageResponse.model_validate(message)
