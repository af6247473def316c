"""
Scheduled tasks for the ingestion service.

PollScheduler wraps an APScheduler AsyncIOScheduler and runs the services
directly in their own sessions. One instance lives on ``app.state.scheduler``;
tests build their own with an injected session factory.

Jobs:
    poll_marketplaces  poll every active marketplace (POLL_SCHEDULE)
    low_stock_check    emit LOW_STOCK notifications, daily 08:00
    cleanup            purge expired counters and old webhook/activity logs, daily 02:00
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from marketsync.core.config import Settings, get_settings
from marketsync.core.counter_store import DatabaseCounterStore
from marketsync.core.enums import WebhookStatus
from marketsync.core.utils import utcnow
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models.activity_log import ActivityLog
from marketsync.models.marketplace import Marketplace
from marketsync.models.webhook import WebhookLog
from marketsync.services.notification_service import Notifier, LoggingNotifier, check_low_stock
from marketsync.services.poll_ingestion import poll_marketplace, SyncSummary

logger = logging.getLogger(__name__)

WEBHOOK_LOG_RETENTION_DAYS = 30
ACTIVITY_LOG_RETENTION_DAYS = 60


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


class PollScheduler:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: Optional[MarketplaceClientRegistry] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry or MarketplaceClientRegistry()
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncIOScheduler()
        self._locks: Dict[int, asyncio.Lock] = {}
        self._configured = False
        self.jobs: Dict[str, Callable[[], Awaitable[Any]]] = {
            "poll_marketplaces": self.poll_marketplaces_task,
            "low_stock_check": self.low_stock_task,
            "cleanup": self.cleanup_task,
        }

    def configure(self) -> None:
        if self._configured:
            return
        self._configured = True
        self.scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        if not self.settings.POLL_SCHEDULE_ENABLED:
            logger.info("Scheduled polling is disabled. Set POLL_SCHEDULE_ENABLED=true to enable")
            return

        self.scheduler.add_job(
            self.poll_marketplaces_task,
            CronTrigger.from_crontab(self.settings.POLL_SCHEDULE),
            id="poll_marketplaces",
            name="Poll Marketplaces",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=300,
        )
        logger.info(f"Poll job added with schedule: {self.settings.POLL_SCHEDULE}")

        self.scheduler.add_job(
            self.low_stock_task,
            CronTrigger(hour=8, minute=0),
            id="low_stock_check",
            name="Low Stock Check",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self.cleanup_task,
            CronTrigger(hour=2, minute=0),
            id="cleanup",
            name="Cleanup Old Logs",
            replace_existing=True,
            max_instances=1,
        )

    async def start(self) -> None:
        self.configure()
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started successfully")
            for job in self.scheduler.get_jobs():
                logger.info(f"  - {job.name}: {job.trigger}")

    async def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped successfully")

    def pause(self) -> bool:
        if not self.scheduler.running:
            return False
        self.scheduler.pause()
        logger.info("Scheduler paused")
        return True

    def resume(self) -> bool:
        if not self.scheduler.running:
            return False
        self.scheduler.resume()
        logger.info("Scheduler resumed")
        return True

    def list_jobs(self) -> List[Dict[str, Any]]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "enabled": self.settings.POLL_SCHEDULE_ENABLED,
            "schedule": self.settings.POLL_SCHEDULE,
            "jobs": self.list_jobs(),
            "available_jobs": sorted(self.jobs),
        }

    async def trigger(self, job_id: str) -> Any:
        """Run a job now, in the caller's task."""
        task = self.jobs.get(job_id)
        if task is None:
            raise KeyError(job_id)
        logger.info(f"Manually triggering {job_id}")
        return await task()

    # Tasks

    async def _poll_one(self, marketplace_id: int, name: str) -> Optional[SyncSummary]:
        lock = self._locks.setdefault(marketplace_id, asyncio.Lock())
        if lock.locked():
            logger.info(f"Poll for {name} still running, skipping this run")
            return None
        async with lock:
            return await poll_marketplace(self.session_factory, marketplace_id, self.registry, self.notifier)

    async def poll_marketplaces_task(self) -> Dict[str, Any]:
        logger.info("=== SCHEDULED POLL STARTING ===")
        async with self.session_factory() as session:
            result = await session.execute(
                select(Marketplace.id, Marketplace.name).where(Marketplace.is_active.is_(True))
            )
            targets = [(row.id, row.name) for row in result.all() if self.registry.supports(row.name.lower().replace(' ', ''))]

        results = await asyncio.gather(
            *(self._poll_one(marketplace_id, name) for marketplace_id, name in targets),
            return_exceptions=True,
        )

        report = {}
        for (marketplace_id, name), summary in zip(targets, results):
            if isinstance(summary, Exception):
                logger.error(f"Poll for {name} crashed: {summary}", exc_info=summary)
                report[name] = {"success": False, "errors": [str(summary)]}
            elif summary is None:
                report[name] = {"success": True, "skipped": "already running"}
            else:
                report[name] = summary.to_dict()
        logger.info(f"=== SCHEDULED POLL DONE: {len(targets)} marketplaces ===")
        return report

    async def low_stock_task(self) -> int:
        async with self.session_factory() as session:
            products = await check_low_stock(session, self.notifier, self.settings.LOW_STOCK_THRESHOLD)
        return len(products)

    async def cleanup_task(self) -> Dict[str, int]:
        now = utcnow()
        counters = await DatabaseCounterStore(self.session_factory).purge_expired()
        async with self.session_factory() as session:
            webhooks = await session.execute(
                delete(WebhookLog).where(
                    WebhookLog.created_at < now - timedelta(days=WEBHOOK_LOG_RETENTION_DAYS),
                    WebhookLog.status.in_([WebhookStatus.SUCCESS, WebhookStatus.IGNORED]),
                )
            )
            activities = await session.execute(
                delete(ActivityLog).where(ActivityLog.created_at < now - timedelta(days=ACTIVITY_LOG_RETENTION_DAYS))
            )
            await session.commit()

        report = {
            "counters": counters,
            "webhook_logs": webhooks.rowcount or 0,
            "activity_logs": activities.rowcount or 0,
        }
        logger.info(f"Cleanup completed: {report}")
        return report
