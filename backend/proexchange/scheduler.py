"""
Background Scheduler - periodic pending-connection reminders

Uses APScheduler inside the API process. When REMINDERS_ENABLED is set,
every REMINDER_INTERVAL_HOURS the scheduler looks for connection
requests that have been pending longer than REMINDER_MIN_AGE_HOURS and
sends each recipient one digest notification.
"""

import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from proexchange.config import get_settings
from proexchange.database import async_session, utcnow
from proexchange.services.notifications import get_dispatcher
from proexchange.services.store import SqlRelationshipStore
from proexchange.services.workflow import WorkflowEngine

logger = logging.getLogger(__name__)

settings = get_settings()
scheduler = AsyncIOScheduler()


async def send_connection_reminders() -> int:
    """Remind recipients of stale pending requests; returns reminders sent."""
    cutoff = utcnow() - timedelta(hours=settings.reminder_min_age_hours)
    async with async_session() as db:
        engine = WorkflowEngine(SqlRelationshipStore(db), get_dispatcher())
        return await engine.remind_pending_connections(cutoff)


def start_scheduler():
    """Start the background scheduler"""
    scheduler.add_job(
        send_connection_reminders,
        trigger=IntervalTrigger(hours=settings.reminder_interval_hours),
        id="connection_reminders",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: connection reminders every {settings.reminder_interval_hours} hours")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
