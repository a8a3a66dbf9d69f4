"""Threshold preference schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class PreferencesResponse(BaseModel):
    """Response schema for a user's glucose thresholds."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    user_id: uuid.UUID
    low_threshold: float
    high_threshold: float
    updated_at: datetime


class PreferencesUpdate(BaseModel):
    """Partial update of the thresholds.

    Ordering (low < high) is checked against the merged values by the
    service, so a single bound can be moved on its own.
    """

    low_threshold: float | None = Field(
        default=None,
        ge=20.0,
        le=400.0,
        description="LOW below this value (mg/dL).",
    )
    high_threshold: float | None = Field(
        default=None,
        ge=20.0,
        le=600.0,
        description="HIGH above this value (mg/dL).",
    )
