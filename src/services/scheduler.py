# src/services/scheduler.py
"""
Scheduler service for periodic payment jobs.
Dispatches staged payment notifications and keeps open payment rows in
step with the sessions booked against them.
"""
import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import Flask

logger = logging.getLogger(__name__)

scheduler = None


def payment_notifications_job():
    """Background job sending every due payment notification stage."""
    try:
        logger.debug("🔄 Starting scheduled payment notification run...")

        from src.db import get_db
        from src.services.notification_service import notification_service

        with get_db() as session:
            result = notification_service.dispatch_due_notifications(session)

        if result["processed"] or result["failed"]:
            logger.info(
                f"📊 Notification run: {result['processed']} sent, "
                f"{result['skipped']} skipped, {result['failed']} failed"
            )

    except Exception as e:
        logger.error(f"❌ Scheduled payment notification run failed: {str(e)}")


def refresh_open_payments_job():
    """Background job recounting every payment that is not yet completed."""
    try:
        logger.debug("🧮 Refreshing open payment totals...")

        from src.db import get_db
        from src.db.models import TherapistPayment
        from src.services.payment_service import payment_service

        with get_db() as session:
            open_payments = (
                session.query(TherapistPayment.therapist_id, TherapistPayment.payment_period_start)
                .filter(TherapistPayment.status != "completed")
                .all()
            )
            for therapist_id, period_start in open_payments:
                payment_service.recalculate(session, therapist_id, period_start)

        logger.debug(f"✅ Refreshed {len(open_payments)} open payments")

    except Exception as e:
        logger.error(f"❌ Open payment refresh failed: {str(e)}")


def init_scheduler(app: Flask):
    """Initialize the background scheduler.

    In multi-worker environments (like Gunicorn with 4 workers),
    we only want ONE worker to run the scheduler to avoid duplicate jobs.
    """
    global scheduler

    if scheduler is not None:
        logger.info("⏭️ Scheduler already initialized, skipping")
        return

    enable_scheduler = os.getenv("ENABLE_SCHEDULER", "true").lower() == "true"

    if not enable_scheduler:
        logger.info("⏭️ Scheduler disabled via ENABLE_SCHEDULER env var")
        return

    # Only the worker holding the lock file starts the scheduler
    import fcntl
    import tempfile

    lock_file_path = os.path.join(tempfile.gettempdir(), "linktherapy_scheduler.lock")

    try:
        lock_file = open(lock_file_path, "w")
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        logger.info("🔒 Acquired scheduler lock - this worker will run scheduled jobs")

    except (IOError, OSError):
        logger.info("⏭️ Another worker is already running the scheduler, skipping initialization")
        return

    try:
        scheduler = BackgroundScheduler(daemon=True)

        interval_minutes = int(os.getenv("PAYMENT_NOTIFICATION_INTERVAL_MINUTES", 60))

        scheduler.add_job(
            func=payment_notifications_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id="payment_notifications",
            name="Send staged payment notifications",
            replace_existing=True,
        )
        logger.debug(f"📅 Scheduled payment notifications every {interval_minutes} minutes")

        # Daily at 1 AM UTC
        scheduler.add_job(
            func=refresh_open_payments_job,
            trigger="cron",
            hour=1,
            minute=0,
            id="refresh_open_payments",
            name="Refresh open payment totals",
            replace_existing=True,
        )
        logger.debug("📅 Scheduled daily open payment refresh at 1:00 AM")

        scheduler.start()
        logger.info("✅ Background scheduler started successfully (running in this worker only)")

        import atexit

        atexit.register(lambda: scheduler.shutdown() if scheduler else None)

    except Exception as e:
        logger.error(f"❌ Failed to initialize scheduler: {str(e)}")


def get_scheduler_status():
    """Get current scheduler status and jobs."""
    if not scheduler:
        return {"status": "not_initialized"}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat()
                if job.next_run_time
                else None,
                "trigger": str(job.trigger),
            }
        )

    return {"status": "running" if scheduler.running else "stopped", "jobs": jobs}

