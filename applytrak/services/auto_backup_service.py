"""Scheduled local-cache backups."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from applytrak.core.config import settings
from applytrak.core.exceptions import ApplyTrakError
from applytrak.schemas.backup import BackupReason
from applytrak.services.backup_manager import BackupManager, backup_manager

logger = logging.getLogger(__name__)

JOB_ID = "local_auto_backup"


class AutoBackupService:
    """Writes a local-cache snapshot every ``auto_backup_interval_minutes``."""

    def __init__(self, backup_manager: BackupManager, interval_minutes: int | None = None):
        self.backup_manager = backup_manager
        self.interval_minutes = interval_minutes or settings.auto_backup_interval_minutes
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def scheduler(self) -> AsyncIOScheduler | None:
        return self._scheduler

    async def start(self):
        """Start the scheduler."""
        if self._scheduler is not None and self._scheduler.running:
            logger.info("Auto backup already running")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.run_backup,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(f"Auto backup started, every {self.interval_minutes} minutes")

    async def stop(self):
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Auto backup stopped")

    async def run_backup(self) -> None:
        """One scheduled run. Failures are logged so the schedule keeps going."""
        try:
            snapshot = await self.backup_manager.cache_local_snapshot(
                reason=BackupReason.SCHEDULED
            )
        except ApplyTrakError as e:
            logger.error(f"Scheduled local backup failed: {e}")
            return
        logger.info(f"Scheduled local backup {snapshot.id} written")

    def get_status(self) -> dict:
        """Get scheduler status."""
        if self._scheduler is None:
            return {"auto_backup_running": False, "interval_minutes": self.interval_minutes}

        job = self._scheduler.get_job(JOB_ID)
        return {
            "auto_backup_running": self._scheduler.running,
            "interval_minutes": self.interval_minutes,
            "next_backup_at": job.next_run_time if job else None,
        }


# Global auto backup service instance
auto_backup_service = AutoBackupService(backup_manager)


async def get_auto_backup_service() -> AutoBackupService:
    """Dependency to get the auto backup service."""
    return auto_backup_service
