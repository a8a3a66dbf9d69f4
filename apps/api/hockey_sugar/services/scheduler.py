"""Background Dexcom polling scheduler.

Wraps an APScheduler AsyncIOScheduler that runs ``poll_all_athletes`` on a
fixed interval. Created in the application lifespan and stored on
``app.state``; nothing here is module-global.
"""

from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hockey_sugar.logging_config import get_logger
from hockey_sugar.services.polling import NO_TOKEN, GlucosePipeline

logger = get_logger(__name__)

POLL_JOB_ID = "dexcom_poll"


class PollingScheduler:
    """Timer that polls every athlete through the pipeline.

    Athletes are polled one after another within a tick, each in its own
    database session, so one athlete's failure never affects the others.
    """

    def __init__(self, pipeline: GlucosePipeline, interval_seconds: int):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def poll_all_athletes(self) -> dict[str, int]:
        """Poll each pollable athlete once.

        Returns:
            Counts of stored, unchanged, skipped and failed cycles
        """
        counts = {"stored": 0, "unchanged": 0, "skipped": 0, "failed": 0}

        try:
            async with self.pipeline.store_factory() as store:
                athlete_ids = await store.find_athletes()
        except Exception:
            logger.exception("Failed to load athletes for Dexcom poll")
            return counts

        if not athlete_ids:
            logger.debug("No athletes to poll")
            return counts

        for athlete_id in athlete_ids:
            if self._stopping:
                break

            result = await self.pipeline.poll(athlete_id)
            if result.success:
                counts["stored"] += 1
            elif result.no_new_data:
                counts["unchanged"] += 1
            elif result.skipped or result.error == NO_TOKEN:
                counts["skipped"] += 1
            else:
                counts["failed"] += 1

        logger.info(
            "Dexcom poll tick completed", athlete_count=len(athlete_ids), **counts
        )
        return counts

    def start(self) -> None:
        """Start polling; the first tick runs immediately."""
        if self._scheduler is not None:
            logger.warning("Polling scheduler already running")
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.poll_all_athletes,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name="Dexcom Glucose Poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(UTC),
        )
        scheduler.start()
        self._scheduler = scheduler
        self._stopping = False
        logger.info(
            "Polling scheduler started", interval_seconds=self.interval_seconds
        )

    async def stop(self) -> None:
        """Stop further ticks, then wait for in-flight cycles to finish.

        Safe to call more than once.
        """
        if self._scheduler is None:
            return

        self._stopping = True
        scheduler, self._scheduler = self._scheduler, None
        scheduler.shutdown(wait=False)
        await self.pipeline.wait_idle()
        logger.info("Polling scheduler stopped")
