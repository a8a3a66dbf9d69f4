"""Dexcom polling pipeline.

One cycle for one athlete runs strictly in order:

    token lookup -> refresh if expired -> fetch latest EGV -> dedup
    -> resolve thresholds -> classify -> persist -> publish

Both the scheduler and the manual "refresh" endpoint run the same cycle.
The inbound webhook and manual entry join at the dedup step through
``ingest_reading``.

Nothing raised inside a cycle escapes it: every outcome, including
unexpected errors, comes back as a ``PollResult``.
"""

import asyncio
import uuid
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from hockey_sugar.config import settings
from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.glucose import ReadingSource, StatusType
from hockey_sugar.services.dedup import is_duplicate
from hockey_sugar.services.dexcom_client import (
    DexcomAuthError,
    DexcomClient,
    DexcomFetchError,
    DexcomTokenExpiredError,
)
from hockey_sugar.services.glucose_store import (
    GlucoseStore,
    ReadingRecord,
    open_glucose_store,
)
from hockey_sugar.services.notifier import (
    GlucoseEventBroker,
    dexcom_auth_error_event,
    glucose_update_event,
)
from hockey_sugar.services.threshold_policy import (
    DEFAULT_THRESHOLDS,
    Thresholds,
    classify,
)
from hockey_sugar.services.token_store import TokenStore

logger = get_logger(__name__)

NO_TOKEN = "no token"
REAUTH_NEEDED = "reauth needed"
NO_READINGS = "no readings"
ALREADY_RUNNING = "poll already in progress"

StoreFactory = Callable[[], AbstractAsyncContextManager[GlucoseStore]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PollResult:
    """Outcome of one pipeline pass."""

    success: bool = False
    error: str | None = None
    no_new_data: bool = False
    needs_reauth: bool = False
    skipped: bool = False
    status: StatusType | None = None
    reading: ReadingRecord | None = None
    # Provider reason behind a generic error, kept as the token's last_error
    detail: str | None = None


def describe_result(result: PollResult) -> str:
    """User-facing summary of a manual refresh."""
    if result.success:
        return "New glucose reading received"
    if result.no_new_data or result.error == NO_READINGS:
        return "Dexcom has not provided a new value yet. Try again shortly."
    if result.error == NO_TOKEN:
        return "No Dexcom account is connected for this athlete"
    if result.needs_reauth:
        return "Dexcom connection expired. Please reconnect."
    if result.error == ALREADY_RUNNING:
        return "A refresh is already in progress"
    return "Could not reach Dexcom. Try again shortly."


class GlucosePipeline:
    """Runs poll cycles and ingests pushed readings.

    Holds the per-athlete in-flight set: a cycle started while another one
    for the same athlete is running is dropped, not queued.
    """

    def __init__(
        self,
        store_factory: StoreFactory,
        client: DexcomClient,
        broker: GlucoseEventBroker,
        expiry_window: timedelta = timedelta(minutes=5),
        dedup_window: timedelta = timedelta(minutes=5),
        dedup_epsilon: float = 0.1,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store_factory = store_factory
        self.client = client
        self.broker = broker
        self.expiry_window = expiry_window
        self.dedup_window = dedup_window
        self.dedup_epsilon = dedup_epsilon
        self.clock = clock
        self._in_flight: set[uuid.UUID] = set()
        self._idle = asyncio.Condition()

    @classmethod
    def from_settings(
        cls,
        broker: GlucoseEventBroker,
        client: DexcomClient | None = None,
        store_factory: StoreFactory = open_glucose_store,
    ) -> "GlucosePipeline":
        return cls(
            store_factory=store_factory,
            client=client or DexcomClient.from_settings(),
            broker=broker,
            expiry_window=timedelta(minutes=settings.dexcom_expiry_window_minutes),
            dedup_window=timedelta(minutes=settings.dedup_window_minutes),
            dedup_epsilon=settings.dedup_epsilon,
        )

    def is_running(self, athlete_id: uuid.UUID) -> bool:
        return athlete_id in self._in_flight

    async def wait_idle(self) -> None:
        """Block until no cycle is in flight."""
        async with self._idle:
            await self._idle.wait_for(lambda: not self._in_flight)

    async def poll(self, athlete_id: uuid.UUID, manual: bool = False) -> PollResult:
        """Run one full cycle for the athlete.

        Args:
            athlete_id: Athlete to poll
            manual: True for a user-triggered refresh, which also runs for
                athletes whose connection is flagged for re-authentication
        """
        if athlete_id in self._in_flight:
            logger.debug("Skipping poll, cycle in flight", athlete_id=str(athlete_id))
            return PollResult(error=ALREADY_RUNNING, skipped=True)

        self._in_flight.add(athlete_id)
        try:
            async with self.store_factory() as store:
                result = await self._run_cycle(store, athlete_id, manual)
                if not result.skipped and result.error != NO_TOKEN:
                    await store.record_poll(
                        athlete_id, self.clock(), result.detail or result.error
                    )
            return result
        except Exception as e:
            logger.exception("Dexcom poll cycle failed", athlete_id=str(athlete_id))
            return PollResult(error=str(e) or e.__class__.__name__)
        finally:
            async with self._idle:
                self._in_flight.discard(athlete_id)
                self._idle.notify_all()

    async def _run_cycle(
        self, store: GlucoseStore, athlete_id: uuid.UUID, manual: bool
    ) -> PollResult:
        tokens = TokenStore(store, self.client, self.expiry_window)

        token = await tokens.get_current_token(athlete_id)
        if token is None:
            logger.debug("No Dexcom token for athlete", athlete_id=str(athlete_id))
            return PollResult(error=NO_TOKEN, needs_reauth=True)

        if token.needs_reauth and not manual:
            return PollResult(error=REAUTH_NEEDED, needs_reauth=True, skipped=True)

        now = self.clock()
        if tokens.is_expired(token, now):
            try:
                token = await tokens.refresh(token)
            except DexcomAuthError as e:
                return await self._require_reauth(tokens, athlete_id, str(e))
            except DexcomFetchError as e:
                logger.warning(
                    "Dexcom token refresh unavailable",
                    athlete_id=str(athlete_id),
                    error=str(e),
                )
                return PollResult(error=str(e))
            await tokens.save(token)

        try:
            latest = await self.client.fetch_latest(token.access_token, now=now)
        except DexcomTokenExpiredError as e:
            return await self._require_reauth(tokens, athlete_id, str(e))
        except DexcomFetchError as e:
            logger.warning(
                "Dexcom fetch failed", athlete_id=str(athlete_id), error=str(e)
            )
            return PollResult(error=str(e))

        if token.needs_reauth:
            # Dexcom accepted the token again, so unpause the timer
            await tokens.save(token)

        if latest is None:
            return PollResult(error=NO_READINGS)

        return await self._ingest(
            store,
            athlete_id,
            value=latest.value,
            unit=latest.unit,
            recorded_at=latest.system_time,
            source=ReadingSource.DEXCOM,
            recorded_by_id=token.parent_id,
            threshold_owner_id=token.parent_id,
            deduplicate=True,
        )

    async def _require_reauth(
        self, tokens: TokenStore, athlete_id: uuid.UUID, reason: str
    ) -> PollResult:
        logger.warning(
            "Dexcom connection needs re-authentication",
            athlete_id=str(athlete_id),
            reason=reason,
        )
        await tokens.mark_needs_reauth(athlete_id, reason)
        await self.broker.publish(athlete_id, dexcom_auth_error_event(athlete_id))
        return PollResult(error=REAUTH_NEEDED, needs_reauth=True, detail=reason)

    async def ingest_reading(
        self,
        athlete_id: uuid.UUID,
        value: float,
        recorded_at: datetime,
        unit: str = "mg/dL",
        source: ReadingSource = ReadingSource.DEXCOM,
        recorded_by_id: uuid.UUID | None = None,
    ) -> PollResult:
        """Run dedup, classify, persist and publish for a pushed reading.

        Manual entries are never deduplicated.
        """
        try:
            async with self.store_factory() as store:
                return await self._ingest(
                    store,
                    athlete_id,
                    value=value,
                    unit=unit,
                    recorded_at=recorded_at,
                    source=source,
                    recorded_by_id=recorded_by_id,
                    threshold_owner_id=recorded_by_id,
                    deduplicate=source != ReadingSource.MANUAL,
                )
        except Exception as e:
            logger.exception(
                "Failed to ingest glucose reading",
                athlete_id=str(athlete_id),
                source=source.value,
            )
            return PollResult(error=str(e) or e.__class__.__name__)

    async def _ingest(
        self,
        store: GlucoseStore,
        athlete_id: uuid.UUID,
        value: float,
        unit: str,
        recorded_at: datetime,
        source: ReadingSource,
        recorded_by_id: uuid.UUID | None,
        threshold_owner_id: uuid.UUID | None,
        deduplicate: bool,
    ) -> PollResult:
        if deduplicate:
            last = await store.get_most_recent_reading(athlete_id, source)
            if last is not None and is_duplicate(
                value,
                recorded_at,
                last.value,
                last.recorded_at,
                window=self.dedup_window,
                epsilon=self.dedup_epsilon,
            ):
                logger.debug(
                    "Duplicate reading skipped",
                    athlete_id=str(athlete_id),
                    value=value,
                    source=source.value,
                )
                return PollResult(no_new_data=True)

        thresholds = await self.resolve_thresholds(
            store, athlete_id, threshold_owner_id
        )
        status = classify(value, thresholds.low, thresholds.high)

        reading = await store.create_reading_with_status(
            athlete_id=athlete_id,
            value=value,
            unit=unit,
            recorded_at=recorded_at,
            source=source,
            status=status,
            recorded_by_id=recorded_by_id,
        )
        await self.broker.publish(athlete_id, glucose_update_event(athlete_id, reading))

        logger.info(
            "Stored glucose reading",
            athlete_id=str(athlete_id),
            value=value,
            status=status.value,
            source=source.value,
        )
        return PollResult(success=True, status=status, reading=reading)

    async def resolve_thresholds(
        self,
        store: GlucoseStore,
        athlete_id: uuid.UUID,
        preferred_user_id: uuid.UUID | None = None,
    ) -> Thresholds:
        """Thresholds for an athlete.

        Order: the preferred user (the token owner or entering parent),
        the athlete's linked parents, the athlete, then {70, 180}.
        """
        candidates: list[uuid.UUID] = []
        if preferred_user_id is not None:
            candidates.append(preferred_user_id)
        candidates.extend(await store.get_parent_ids(athlete_id))
        candidates.append(athlete_id)

        seen: set[uuid.UUID] = set()
        for user_id in candidates:
            if user_id in seen:
                continue
            seen.add(user_id)
            thresholds = await store.get_preferences(user_id)
            if thresholds is not None:
                return thresholds
        return DEFAULT_THRESHOLDS
