"""
Background scheduler for periodic tasks.

- Reconcile event statuses: every STATUS_SWEEP_INTERVAL_MINUTES
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from afisha.core.config import settings
from afisha.core.database import SessionLocal
from afisha.services.status_service import sweep_event_statuses
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def reconcile_event_statuses_job():
    """
    Move finished ACTIVE events to PAST without waiting for a read.

    PENDING and REJECTED events are left alone.
    """
    db = SessionLocal()
    try:
        changed = sweep_event_statuses(db)
        if changed > 0:
            logger.info(f"Status sweep completed: {changed} events updated")
        else:
            logger.debug("Status sweep completed: nothing to update")
    except SQLAlchemyError as e:
        logger.error(f"Error in reconcile_event_statuses_job: {str(e)}")
        db.rollback()
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    Called from the app lifespan when SCHEDULER_ENABLED is set.
    """
    if not scheduler.running:
        minutes = settings.STATUS_SWEEP_INTERVAL_MINUTES
        scheduler.add_job(
            reconcile_event_statuses_job,
            trigger=IntervalTrigger(minutes=minutes),
            id="reconcile_event_statuses",
            name="Reconcile event statuses",
            replace_existing=True
        )

        scheduler.start()
        logger.info(f"Background scheduler started. Status sweep scheduled every {minutes} minutes.")


def stop_scheduler():
    """Stop the background scheduler on app shutdown."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
