import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from backup import BackupExporter
from config import get_settings
from database import session_scope
from errors import AppError
from services import ExpenseService, RecurringExpenseService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.identity = settings.scheduler_identity
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self.backup = BackupExporter(
            enabled=settings.backup_enabled,
            path=settings.backup_path,
            scheduler=self.scheduler,
        )

    def _run_recurring(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        try:
            with session_scope() as session:
                service = RecurringExpenseService(session, self.identity, self.backup)
                count = service.process()
        except AppError:
            logger.exception(f"scheduler_run_failed: source={source}")
            return
        logger.info(f"scheduler_run: source={source} created={count}")

    def _run_backup(self, source: str = "manual") -> None:
        try:
            with session_scope() as session:
                rows = ExpenseService(session, self.identity, self.backup).sync_backup()
        except AppError:
            logger.exception(f"backup_sync_failed: source={source}")
            return
        logger.info(f"backup_sync: source={source} rows={rows}")

    def start(self) -> None:
        self._run_recurring("startup")

        trigger = CronTrigger(hour=3, minute=15)
        self.scheduler.add_job(
            self._run_recurring,
            trigger,
            args=["daily_03:15"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_recurring,
            trigger,
            args=["hourly_safety_net"],
            id="recurring_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        if self.backup.enabled:
            self.scheduler.add_job(
                self._run_backup,
                CronTrigger(hour=4, minute=0),
                args=["daily_04:00"],
                id="backup_daily",
                replace_existing=True,
                misfire_grace_time=3600,
            )

        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 and hourly safety net")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
