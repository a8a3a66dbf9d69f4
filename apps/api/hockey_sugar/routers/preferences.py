"""Threshold preferences router."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.core.auth import ParentUser
from hockey_sugar.database import get_db
from hockey_sugar.schemas.common import ErrorResponse
from hockey_sugar.schemas.preferences import PreferencesResponse, PreferencesUpdate
from hockey_sugar.services.preferences import (
    get_or_create_preferences,
    update_preferences,
)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> PreferencesResponse:
    """The current user's LOW/HIGH thresholds, created with defaults if absent."""
    preferences = await get_or_create_preferences(current_user.id, db)
    return PreferencesResponse.model_validate(preferences)


@router.put(
    "/preferences",
    response_model=PreferencesResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid thresholds"}},
)
async def put_preferences(
    body: PreferencesUpdate,
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> PreferencesResponse:
    """Update the thresholds; low must stay below high."""
    try:
        preferences = await update_preferences(current_user.id, body, db)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return PreferencesResponse.model_validate(preferences)
