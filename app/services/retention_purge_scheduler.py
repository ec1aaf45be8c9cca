from __future__ import annotations

import asyncio
import traceback

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import logger
from app.schemas.soft_delete import PurgeResult
from app.services.admin_email_service import send_admin_alert_email
from app.services.retention_service import purge_expired
from core.settings import Settings, get_settings


class RetentionPurgeScheduler:
    """Daily retention purge job with an in-process overlap guard.

    The scheduler owns its APScheduler instance and its lock, so several
    independent instances (e.g. one per test) can coexist.

    Args:
        session_factory: Factory producing a fresh ``AsyncSession`` per run.
        settings: Settings providing cron, timezone and the enabled flag.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._scheduler: AsyncIOScheduler | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        """Whether a purge run is currently in progress."""
        return self._lock.locked()

    @property
    def started(self) -> bool:
        return self._scheduler is not None

    async def run_once(self) -> PurgeResult | None:
        """Run the purge once.

        Overlapping invocations are skipped with a warning instead of queued.

        Returns:
            The purge result, or ``None`` when the run was skipped.
        """

        if self._lock.locked():
            logger.warning(
                "Retention purge skipped: previous run still in progress."
            )
            return None

        async with self._lock:
            logger.info("Retention purge started.")
            async with self._session_factory() as session:
                try:
                    result = await purge_expired(session)
                except Exception:
                    await self._alert_admin(traceback.format_exc())
                    logger.warning("Retention purge failed to complete.", exc_info=True)
                    raise
            logger.info(
                "Retention purge completed successfully. Purged %d records (%s).",
                result.total,
                result.purged,
            )
            return result

    async def _alert_admin(self, detail: str) -> None:
        try:
            await send_admin_alert_email(
                subject="Retention purge failed",
                body=detail,
            )
        except Exception:
            logger.warning(
                "Retention purge failed to send admin alert email.", exc_info=True
            )

    def start(self) -> None:
        """Register the cron job and start the scheduler if enabled."""

        if self._scheduler is not None:
            return

        if not self._settings.retention_purge_scheduler_enabled:
            logger.info("Retention purge scheduler disabled by settings.")
            return

        trigger = CronTrigger.from_crontab(
            self._settings.retention_purge_cron,
            timezone=self._settings.retention_purge_timezone,
        )
        self._scheduler = AsyncIOScheduler(
            timezone=self._settings.retention_purge_timezone
        )
        self._scheduler.add_job(
            self.run_once,
            trigger=trigger,
            id="retention_purge_daily",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            "Retention purge scheduler started (cron=%s, timezone=%s).",
            self._settings.retention_purge_cron,
            self._settings.retention_purge_timezone,
        )

    def shutdown(self) -> None:
        """Stop the scheduler if it is running."""

        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Retention purge scheduler stopped.")
