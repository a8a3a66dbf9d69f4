"""Dexcom token lifecycle: lookup, expiry checks, refresh and save."""

import uuid
from datetime import datetime, timedelta

from hockey_sugar.logging_config import get_logger
from hockey_sugar.services.dexcom_client import DexcomClient
from hockey_sugar.services.glucose_store import GlucoseStore, StoredToken

logger = get_logger(__name__)

DEFAULT_EXPIRY_WINDOW = timedelta(minutes=5)


def is_expired(token: StoredToken, now: datetime) -> bool:
    return token.expires_at <= now


def is_expiring_soon(
    token: StoredToken,
    now: datetime,
    window: timedelta = DEFAULT_EXPIRY_WINDOW,
) -> bool:
    return token.expires_at <= now + window


class TokenStore:
    """Owns the current Dexcom token for each athlete.

    Refresh failures are never retried here; callers surface them as a
    re-authentication requirement.
    """

    def __init__(
        self,
        store: GlucoseStore,
        client: DexcomClient,
        expiry_window: timedelta = DEFAULT_EXPIRY_WINDOW,
    ):
        self.store = store
        self.client = client
        self.expiry_window = expiry_window

    async def get_current_token(self, athlete_id: uuid.UUID) -> StoredToken | None:
        return await self.store.get_token(athlete_id)

    def is_expired(self, token: StoredToken, now: datetime) -> bool:
        return is_expired(token, now)

    def is_expiring_soon(
        self,
        token: StoredToken,
        now: datetime,
        window: timedelta | None = None,
    ) -> bool:
        return is_expiring_soon(token, now, window or self.expiry_window)

    async def refresh(self, token: StoredToken) -> StoredToken:
        """Exchange the refresh token for a new pair.

        Raises:
            DexcomAuthError: Dexcom rejected the refresh token
            DexcomFetchError: The token endpoint could not be reached
        """
        grant = await self.client.refresh_token(token.refresh_token)
        logger.info(
            "Refreshed Dexcom token",
            athlete_id=str(token.athlete_id),
            expires_at=grant.expires_at.isoformat(),
        )
        return StoredToken(
            parent_id=token.parent_id,
            athlete_id=token.athlete_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
        )

    async def save(self, token: StoredToken) -> None:
        """Persist as the athlete's current token; clears needs_reauth."""
        token.needs_reauth = False
        await self.store.save_token(token)

    async def mark_needs_reauth(self, athlete_id: uuid.UUID, reason: str) -> None:
        await self.store.mark_needs_reauth(athlete_id, reason)
