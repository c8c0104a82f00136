"""Daily scheduler running the harvesting job."""
from __future__ import annotations

import logging
from zoneinfo import ZoneInfo

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import Settings
from .logging_utils import configure_logging
from .runner import run_harvest

LOGGER = logging.getLogger(__name__)

JOB_ID = "daily-short-harvest"


def _harvest_job(settings: Settings) -> None:
    """Wrapper for running the harvest within the scheduler."""

    LOGGER.info("Running scheduled harvest job")
    try:
        report = run_harvest(settings)
    except Exception:  # the scheduler must survive a failed run
        LOGGER.exception("Scheduled harvest run failed")
    else:
        LOGGER.info("Scheduled harvest completed, changed tickers: %s", ", ".join(report.changed) or "none")


def build_trigger(settings: Settings) -> CronTrigger:
    return CronTrigger(
        hour=settings.schedule_hour,
        minute=settings.schedule_minute,
        timezone=ZoneInfo(settings.schedule_timezone),
    )


def configure_job(scheduler: BlockingScheduler, settings: Settings) -> None:
    """Ensure the scheduler holds a job matching the configured schedule."""

    scheduler.add_job(
        _harvest_job,
        trigger=build_trigger(settings),
        args=[settings],
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    LOGGER.info(
        "Scheduled daily harvest job for %02d:%02d %s",
        settings.schedule_hour,
        settings.schedule_minute,
        settings.schedule_timezone,
    )


def main() -> None:
    configure_logging()
    settings = Settings.load()
    scheduler = BlockingScheduler()
    configure_job(scheduler, settings)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        LOGGER.info("Scheduler shut down")


if __name__ == "__main__":  # pragma: no cover
    main()
