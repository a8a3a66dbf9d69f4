"""Dexcom connection router.

OAuth connect/callback, connection status, manual refresh and disconnect
for an athlete's Dexcom account.
"""

import uuid
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.config import settings
from hockey_sugar.core.auth import ParentUser, ensure_athlete_access
from hockey_sugar.core.security import create_oauth_state, decode_oauth_state
from hockey_sugar.database import get_db
from hockey_sugar.dependencies import Dexcom, Pipeline
from hockey_sugar.logging_config import get_logger
from hockey_sugar.middleware.rate_limit import MANUAL_REFRESH_LIMIT, limiter
from hockey_sugar.models.dexcom_token import DexcomToken
from hockey_sugar.schemas.common import ErrorResponse
from hockey_sugar.schemas.dexcom import (
    DexcomAuthorizeResponse,
    DexcomCallbackResponse,
    DexcomConnectionResponse,
)
from hockey_sugar.schemas.glucose import PollResultResponse
from hockey_sugar.services.dexcom_client import DexcomAuthError, DexcomFetchError
from hockey_sugar.services.glucose_store import SqlAlchemyGlucoseStore, StoredToken
from hockey_sugar.services.polling import describe_result
from hockey_sugar.services.token_store import TokenStore, is_expiring_soon

logger = get_logger(__name__)

router = APIRouter(prefix="/api/dexcom", tags=["dexcom"])


@router.get(
    "/authorize",
    response_model=DexcomAuthorizeResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not linked to athlete"},
        503: {"model": ErrorResponse, "description": "Dexcom not configured"},
    },
)
async def authorize_dexcom(
    current_user: ParentUser,
    dexcom: Dexcom,
    athlete_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
) -> DexcomAuthorizeResponse:
    """Return the Dexcom login URL for connecting an athlete's account.

    The ``state`` parameter binds the callback to this parent and athlete.
    """
    if not dexcom.client_id:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dexcom integration is not configured",
        )
    await ensure_athlete_access(current_user, athlete_id, db)

    state = create_oauth_state(current_user.id, athlete_id)
    return DexcomAuthorizeResponse(authorize_url=dexcom.authorize_url(state))


@router.get(
    "/callback",
    response_model=DexcomCallbackResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid state or code"},
        502: {"model": ErrorResponse, "description": "Dexcom unavailable"},
    },
)
async def dexcom_callback(
    dexcom: Dexcom,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> DexcomCallbackResponse:
    """Complete the OAuth flow and store the athlete's token pair."""
    if error:
        logger.warning("Dexcom authorization denied", error=error)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Dexcom authorization failed: {error}",
        )
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing code or state",
        )

    bound = decode_oauth_state(state)
    if bound is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state",
        )
    parent_id, athlete_id = bound

    try:
        grant = await dexcom.exchange_code(code)
    except DexcomAuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Dexcom rejected the authorization code: {e}",
        )
    except DexcomFetchError as e:
        logger.error("Dexcom code exchange failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not reach Dexcom. Please try again.",
        )

    token = StoredToken(
        parent_id=parent_id,
        athlete_id=athlete_id,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        expires_at=grant.expires_at,
    )
    await TokenStore(SqlAlchemyGlucoseStore(db), dexcom).save(token)

    logger.info(
        "Dexcom account connected",
        parent_id=str(parent_id),
        athlete_id=str(athlete_id),
    )
    return DexcomCallbackResponse(
        message="Dexcom account connected",
        athlete_id=athlete_id,
        expires_at=grant.expires_at,
    )


@router.get("/status", response_model=DexcomConnectionResponse)
async def get_dexcom_status(
    current_user: ParentUser,
    athlete_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
) -> DexcomConnectionResponse:
    """Connection state for an athlete's Dexcom account."""
    await ensure_athlete_access(current_user, athlete_id, db)

    result = await db.execute(
        select(DexcomToken).where(DexcomToken.athlete_id == athlete_id)
    )
    token = result.scalar_one_or_none()
    if token is None:
        return DexcomConnectionResponse(athlete_id=athlete_id, connected=False)

    window = timedelta(minutes=settings.dexcom_expiry_window_minutes)
    return DexcomConnectionResponse(
        athlete_id=athlete_id,
        connected=True,
        parent_id=token.parent_id,
        expires_at=token.expires_at,
        expiring_soon=is_expiring_soon(token, datetime.now(UTC), window),
        needs_reauth=token.needs_reauth,
        last_poll_at=token.last_poll_at,
        last_error=token.last_error,
    )


@router.post(
    "/refresh/{athlete_id}",
    response_model=PollResultResponse,
    responses={403: {"model": ErrorResponse, "description": "Not linked to athlete"}},
)
@limiter.limit(MANUAL_REFRESH_LIMIT)
async def refresh_dexcom(
    request: Request,
    athlete_id: uuid.UUID,
    current_user: ParentUser,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> PollResultResponse:
    """Run one poll cycle now and report what happened.

    Also runs for connections paused after a rejected refresh, so a
    reconnected account can be checked immediately.
    """
    await ensure_athlete_access(current_user, athlete_id, db)

    result = await pipeline.poll(athlete_id, manual=True)
    logger.info(
        "Manual Dexcom refresh",
        athlete_id=str(athlete_id),
        user_id=str(current_user.id),
        success=result.success,
        error=result.error,
    )
    return PollResultResponse.from_result(result, describe_result(result))


@router.delete(
    "/{athlete_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse, "description": "Not connected"}},
)
async def disconnect_dexcom(
    athlete_id: uuid.UUID,
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    """Remove the athlete's stored Dexcom tokens."""
    await ensure_athlete_access(current_user, athlete_id, db)

    result = await db.execute(
        delete(DexcomToken).where(DexcomToken.athlete_id == athlete_id)
    )
    if result.rowcount == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Dexcom connection for this athlete",
        )
    await db.commit()
    logger.info(
        "Dexcom account disconnected",
        athlete_id=str(athlete_id),
        user_id=str(current_user.id),
    )
