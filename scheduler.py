import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from config import get_settings
from database import session_scope
from recurrence import FixedAccountEngine
from services import JobExecutionService, NotificationJobService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _catch_up(session: Session) -> dict:
    return {"occurrences_created": FixedAccountEngine(session).catch_up_all()}


def _due_notifications(session: Session) -> dict:
    return {"created": NotificationJobService(session).generate_due_notifications()}


def _general_reminders(session: Session) -> dict:
    return {"created": NotificationJobService(session).general_reminders()}


def _notification_cleanup(session: Session) -> dict:
    return {"deactivated": NotificationJobService(session).cleanup()}


JOBS: dict[str, Callable[[Session], dict]] = {
    "fixed_account_catch_up": _catch_up,
    "due_notifications": _due_notifications,
    "general_reminders": _general_reminders,
    "notification_cleanup": _notification_cleanup,
}


def run_job(job_name: str, source: str = "manual") -> dict:
    """Run one job inside its own session and record a JobExecution for it."""
    job = JOBS.get(job_name)
    if job is None:
        raise ValueError(f"Unknown job: {job_name}")
    with session_scope() as session:
        execution_id = JobExecutionService(session).start(job_name, source).id
    logger.info(f"scheduler_run: job={job_name} source={source}")
    try:
        with session_scope() as session:
            result = job(session)
    except Exception as exc:
        with session_scope() as session:
            JobExecutionService(session).fail(execution_id, str(exc))
        logger.exception(f"scheduler_failed: job={job_name} source={source}")
        raise
    with session_scope() as session:
        JobExecutionService(session).finish(execution_id, result)
    logger.info(f"scheduler_done: job={job_name} source={source} result={result}")
    return result


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.enabled = settings.scheduler_enabled
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, job_name: str, source: str = "manual") -> Optional[dict]:
        try:
            return run_job(job_name, source)
        except Exception:
            # logged and recorded as a failed JobExecution by run_job
            if source == "manual":
                raise
            return None

    def _add(self, job_name: str, trigger, source: str, grace: int) -> None:
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[job_name, source],
            id=f"{job_name}_{source}",
            replace_existing=True,
            misfire_grace_time=grace,
        )

    def start(self) -> None:
        if not self.enabled:
            logger.info("Scheduler disabled by FINANCE_SCHEDULER_ENABLED")
            return

        self._run_job("fixed_account_catch_up", "startup")

        self._add(
            "fixed_account_catch_up", CronTrigger(hour=0, minute=30), "daily_00:30", 3600
        )
        self._add(
            "fixed_account_catch_up", IntervalTrigger(hours=1), "hourly_safety_net", 300
        )
        self._add("due_notifications", IntervalTrigger(hours=6), "every_6h", 1800)
        self._add("general_reminders", CronTrigger(hour=9, minute=0), "daily_09:00", 3600)
        self._add(
            "notification_cleanup",
            CronTrigger(day_of_week="sun", hour=2, minute=0),
            "weekly_sun_02:00",
            3600,
        )

        self.scheduler.start()
        logger.info(
            "Scheduler started: catch-up daily 00:30 and hourly, due scan every 6h,"
            " reminders 09:00, cleanup Sunday 02:00"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
