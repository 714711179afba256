# communication/signals.py
import logging

from django.dispatch import receiver

from text_sessions.signals import session_status_changed
from .services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@receiver(session_status_changed)
def handle_text_session_status(sender, session, previous_status, status, **kwargs):
    """Notify both participants of every text session transition"""
    try:
        NotificationService.notify_text_session(session, previous_status, status)
    except Exception:
        # The transition is already committed
        logger.exception(f"Failed to create notifications for text session {session.pk}")
