from __future__ import annotations

import logging
import sys
from contextlib import contextmanager

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from ..db.session import SessionLocal
from ..services.reminders import ReminderDispatchError, send_confirmation_reminders


logger = logging.getLogger(__name__)


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_reminder_job() -> None:
    try:
        with session_scope() as session:
            stats = send_confirmation_reminders(session)
    except ReminderDispatchError:
        # the scheduler keeps running; the next daily run picks the same visitors up again
        logger.exception("Confirmation reminder run failed")
        return
    logger.info("Confirmation reminders: %s", stats)


def run_once() -> None:
    run_reminder_job()


def configure_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(run_reminder_job, CronTrigger(hour=14, minute=0))
    return scheduler


def main() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])

    if len(sys.argv) > 1 and sys.argv[1] == "run-once":
        logger.info("Running reminder worker once")
        run_once()
        return

    scheduler = configure_scheduler()
    logger.info("Starting reminder worker scheduler")
    scheduler.start()


if __name__ == "__main__":
    main()
