"""Glucose router: manual entry, history, athlete status and LOW acknowledgement."""

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.core.auth import (
    AthleteUser,
    CurrentUser,
    ParentUser,
    ensure_athlete_access,
)
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import Pipeline
from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.glucose import ReadingSource, StatusType
from hockey_sugar.schemas.common import ErrorResponse
from hockey_sugar.schemas.glucose import (
    AthleteStatusResponse,
    AthleteSummary,
    GlucoseHistoryResponse,
    GlucoseReadingResponse,
    ManualReadingRequest,
)
from hockey_sugar.services.glucose import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    ReadingValidationError,
    acknowledge_low,
    get_latest_reading,
    get_linked_athletes,
    get_reading_history,
    parse_glucose_value,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["glucose"])


@router.post(
    "/athletes/{athlete_id}/glucose",
    response_model=GlucoseReadingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid glucose value"},
        403: {"model": ErrorResponse, "description": "Not linked to athlete"},
    },
)
async def create_manual_reading(
    athlete_id: uuid.UUID,
    body: ManualReadingRequest,
    current_user: ParentUser,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> GlucoseReadingResponse:
    """Record a glucose value entered by a parent or coach."""
    await ensure_athlete_access(current_user, athlete_id, db)

    try:
        value = parse_glucose_value(body.value)
    except ReadingValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = await pipeline.ingest_reading(
        athlete_id,
        value=value,
        recorded_at=datetime.now(UTC),
        unit=body.unit,
        source=ReadingSource.MANUAL,
        recorded_by_id=current_user.id,
    )
    if not result.success or result.reading is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save glucose reading",
        )
    return GlucoseReadingResponse.from_reading(result.reading)


@router.get("/athletes", response_model=list[AthleteSummary])
async def list_athletes(
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> list[AthleteSummary]:
    """Athletes linked to the current parent, with their latest reading."""
    athletes = await get_linked_athletes(db, current_user.id)

    summaries = []
    for athlete in athletes:
        latest = await get_latest_reading(db, athlete.id)
        summaries.append(
            AthleteSummary(
                id=athlete.id,
                name=athlete.name,
                email=athlete.email,
                latest_reading=(
                    GlucoseReadingResponse.from_reading(latest) if latest else None
                ),
            )
        )
    return summaries


@router.get(
    "/glucose/history",
    response_model=GlucoseHistoryResponse,
    responses={403: {"model": ErrorResponse, "description": "Not linked to athlete"}},
)
async def get_glucose_history(
    current_user: CurrentUser,
    athlete_id: uuid.UUID | None = Query(
        default=None,
        description="Athlete to query; defaults to the current user",
    ),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    db: AsyncSession = Depends(get_db),
) -> GlucoseHistoryResponse:
    """Most recent readings for an athlete, newest first."""
    target_id = athlete_id or current_user.id
    await ensure_athlete_access(current_user, target_id, db)

    readings = await get_reading_history(db, target_id, limit=limit)
    return GlucoseHistoryResponse(
        readings=[GlucoseReadingResponse.from_reading(r) for r in readings],
        count=len(readings),
    )


@router.get("/status", response_model=AthleteStatusResponse)
async def get_athlete_status(
    current_user: AthleteUser,
    db: AsyncSession = Depends(get_db),
) -> AthleteStatusResponse:
    """Current status for the athlete's own device."""
    latest = await get_latest_reading(db, current_user.id)
    if latest is None:
        return AthleteStatusResponse(
            athlete_id=current_user.id,
            status=None,
            reading=None,
            needs_acknowledgement=False,
        )

    reading = GlucoseReadingResponse.from_reading(latest)
    return AthleteStatusResponse(
        athlete_id=current_user.id,
        status=reading.status,
        reading=reading,
        needs_acknowledgement=(
            reading.status == StatusType.LOW and reading.acknowledged_at is None
        ),
    )


@router.post(
    "/status/acknowledge",
    response_model=GlucoseReadingResponse,
    responses={404: {"model": ErrorResponse, "description": "Nothing to acknowledge"}},
)
async def acknowledge_status(
    current_user: AthleteUser,
    db: AsyncSession = Depends(get_db),
) -> GlucoseReadingResponse:
    """Acknowledge the athlete's current LOW reading."""
    reading = await acknowledge_low(db, current_user.id)
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No unacknowledged LOW reading",
        )
    return GlucoseReadingResponse.from_reading(reading)
