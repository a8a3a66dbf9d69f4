"""Dexcom connection schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class DexcomAuthorizeResponse(BaseModel):
    authorize_url: str


class DexcomConnectionResponse(BaseModel):
    """Connection state of an athlete's Dexcom account."""

    athlete_id: uuid.UUID
    connected: bool
    parent_id: uuid.UUID | None = None
    expires_at: datetime | None = None
    expiring_soon: bool = False
    needs_reauth: bool = False
    last_poll_at: datetime | None = None
    last_error: str | None = None


class DexcomCallbackResponse(BaseModel):
    message: str
    athlete_id: uuid.UUID
    expires_at: datetime
