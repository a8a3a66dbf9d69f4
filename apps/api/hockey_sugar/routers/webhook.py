"""Inbound glucose webhook.

Lets an external uploader push CGM readings instead of waiting for the
poller. Pushed readings join the pipeline at the dedup step, so a value
the poller already stored is not stored twice.
"""

import hmac
import uuid
from datetime import UTC

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.config import settings
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import Pipeline
from hockey_sugar.logging_config import get_logger
from hockey_sugar.middleware.rate_limit import WEBHOOK_LIMIT, limiter
from hockey_sugar.models.glucose import ReadingSource
from hockey_sugar.models.user import User
from hockey_sugar.schemas.common import ErrorResponse
from hockey_sugar.schemas.glucose import PollResultResponse, WebhookReadingRequest
from hockey_sugar.services.polling import describe_result

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"


def verify_webhook_secret(provided: str | None) -> None:
    """Raise unless the shared secret matches the configured one."""
    if not settings.webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook is not enabled",
        )
    if not provided or not hmac.compare_digest(
        provided.encode(), settings.webhook_secret.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


@router.post(
    "/glucose/{athlete_id}",
    response_model=PollResultResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"description": "Duplicate reading, nothing stored"},
        401: {"model": ErrorResponse, "description": "Invalid webhook secret"},
        404: {"model": ErrorResponse, "description": "Unknown athlete"},
    },
)
@limiter.limit(WEBHOOK_LIMIT)
async def receive_glucose(
    request: Request,
    response: Response,
    athlete_id: uuid.UUID,
    body: WebhookReadingRequest,
    pipeline: Pipeline,
    x_webhook_secret: str | None = Header(default=None, alias=WEBHOOK_SECRET_HEADER),
    db: AsyncSession = Depends(get_db),
) -> PollResultResponse:
    """Accept `{value, timestamp, unit?}` for an athlete."""
    verify_webhook_secret(x_webhook_secret)

    result = await db.execute(select(User.id).where(User.id == athlete_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Athlete not found",
        )

    recorded_at = body.timestamp
    if recorded_at.tzinfo is None:
        recorded_at = recorded_at.replace(tzinfo=UTC)

    poll_result = await pipeline.ingest_reading(
        athlete_id,
        value=body.value,
        recorded_at=recorded_at,
        unit=body.unit,
        source=ReadingSource.DEXCOM,
    )
    if poll_result.error:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store glucose reading",
        )
    if poll_result.no_new_data:
        response.status_code = status.HTTP_200_OK

    logger.info(
        "Webhook reading received",
        athlete_id=str(athlete_id),
        stored=poll_result.success,
    )
    return PollResultResponse.from_result(poll_result, describe_result(poll_result))
