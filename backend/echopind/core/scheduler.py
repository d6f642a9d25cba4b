"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Purge expired refresh tokens: runs every TOKEN_PURGE_INTERVAL_HOURS

Purging is housekeeping only. Reads already ignore expired tokens, so a
stopped scheduler never makes an expired token usable again.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from echopind.services.user_store import UserStore

logger = logging.getLogger(__name__)


def purge_expired_refresh_tokens_job(session_factory: sessionmaker) -> int:
    """Delete refresh token rows past their expiry. Returns the number removed."""
    db = session_factory()
    try:
        deleted = UserStore(db).purge_expired_refresh_tokens()
        if deleted > 0:
            logger.info(f"Purge job completed: Deleted {deleted} expired refresh tokens")
        else:
            logger.info("Purge job completed: No expired refresh tokens found")
        return deleted
    except SQLAlchemyError:
        logger.exception("Error in purge_expired_refresh_tokens_job")
        db.rollback()
        return 0
    finally:
        db.close()


def start_scheduler(session_factory: sessionmaker, interval_hours: int) -> Optional[BackgroundScheduler]:
    """
    Start the background scheduler.

    Called from the app lifespan. Returns None when the purge job is disabled
    (interval_hours <= 0).
    """
    if interval_hours <= 0:
        logger.info("Refresh token purge job disabled")
        return None

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        purge_expired_refresh_tokens_job,
        trigger=IntervalTrigger(hours=interval_hours),
        args=[session_factory],
        id="purge_expired_refresh_tokens",
        name="Purge expired refresh tokens",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Background scheduler started. Purge job scheduled every {interval_hours} hours.")
    return scheduler


def stop_scheduler(scheduler: Optional[BackgroundScheduler]) -> None:
    """Stop the background scheduler on app shutdown."""
    if scheduler is not None and scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
