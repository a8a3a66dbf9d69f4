"""Message schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    is_urgent: bool = False


class MessageResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    content: str
    is_urgent: bool
    read: bool
    acknowledged_at: datetime | None = None
    created_at: datetime


class InboxResponse(BaseModel):
    messages: list[MessageResponse]
    unread_count: int
