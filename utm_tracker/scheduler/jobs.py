"""UTM Tracker — Scheduler Jobs.

APScheduler interval job that drains engaged clicks into Google Sheets.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from utm_tracker.config import Settings
from utm_tracker.core.logging import get_logger
from utm_tracker.export.mirror import ExportMirror

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def scheduled_export_job(mirror: ExportMirror):
    """Run one batch export; failures are summarised, never raised."""
    logger.info("Scheduled Sheets export starting...")
    result = await mirror.scheduled_sync()
    if result["success"]:
        logger.info(f"Scheduled export complete. Synced: {result['syncedCount']}")
    else:
        logger.error(f"Scheduled export failed: {result.get('error')}")


def start_scheduler(settings: Settings, mirror: ExportMirror):
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        scheduled_export_job,
        "interval",
        minutes=settings.sync_interval_minutes,
        kwargs={"mirror": mirror},
        id="scheduled_export",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Sheets export every {settings.sync_interval_minutes} min")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
