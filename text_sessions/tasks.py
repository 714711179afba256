# text_sessions/tasks.py
from celery import shared_task
import logging

from .services.expiration_sweeper import ExpirationSweeper

logger = logging.getLogger(__name__)


@shared_task
def sweep_text_sessions():
    """
    Scheduled task expiring overdue text sessions, ending the ones that ran out
    of time and billing completed intervals of the rest.
    Runs every TEXT_SESSION_SWEEP_SECONDS from the beat schedule.
    """
    report = ExpirationSweeper().run()
    if report.failed:
        logger.warning(f"{report.failed} text session(s) failed during sweep")
    return str(report)
