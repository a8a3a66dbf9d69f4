"""Threshold preferences with a get-or-create pattern."""

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.preferences import UserPreferences
from hockey_sugar.schemas.preferences import PreferencesUpdate

logger = get_logger(__name__)


async def get_or_create_preferences(
    user_id: uuid.UUID,
    db: AsyncSession,
) -> UserPreferences:
    """Get the user's preferences, creating the {70, 180} defaults if absent.

    Args:
        user_id: User's UUID.
        db: Database session.

    Returns:
        The user's UserPreferences record.
    """
    result = await db.execute(
        select(UserPreferences).where(UserPreferences.user_id == user_id)
    )
    preferences = result.scalar_one_or_none()

    if preferences is None:
        preferences = UserPreferences(user_id=user_id)
        db.add(preferences)
        try:
            await db.commit()
        except IntegrityError:
            # Created by a concurrent request
            await db.rollback()
            result = await db.execute(
                select(UserPreferences).where(UserPreferences.user_id == user_id)
            )
            return result.scalar_one()
        await db.refresh(preferences)

        logger.info("Created default preferences", user_id=str(user_id))

    return preferences


async def update_preferences(
    user_id: uuid.UUID,
    updates: PreferencesUpdate,
    db: AsyncSession,
) -> UserPreferences:
    """Apply a partial threshold update.

    Raises:
        ValueError: If the merged low threshold is not below the high one.
    """
    preferences = await get_or_create_preferences(user_id, db)

    low = (
        updates.low_threshold
        if updates.low_threshold is not None
        else preferences.low_threshold
    )
    high = (
        updates.high_threshold
        if updates.high_threshold is not None
        else preferences.high_threshold
    )
    if low >= high:
        msg = f"Low threshold ({low}) must be less than high threshold ({high})"
        raise ValueError(msg)

    update_data = updates.model_dump(exclude_none=True)
    for field, value in update_data.items():
        setattr(preferences, field, value)

    await db.commit()
    await db.refresh(preferences)

    logger.info(
        "Updated preferences",
        user_id=str(user_id),
        fields=list(update_data.keys()),
    )
    return preferences
