# communication/services/notification_service.py
from django.utils import timezone
from ..models import Notification


class NotificationService:
    """Service for creating and managing notifications"""
    
    @staticmethod
    def create_notification(recipient, notification_type, title, message, **kwargs):
        """
        Create a notification for a user
        
        Args:
            recipient: The user to notify
            notification_type: The type of notification (from NOTIFICATION_TYPES)
            title: The notification title
            message: The notification message
            **kwargs: Additional fields (related_object_type, related_object_id, data)
            
        Returns:
            Notification: The created notification
        """
        return Notification.objects.create(
            recipient=recipient,
            notification_type=notification_type,
            title=title,
            message=message,
            related_object_type=kwargs.get('related_object_type'),
            related_object_id=kwargs.get('related_object_id'),
            data=kwargs.get('data', {})
        )
    
    @staticmethod
    def text_session_messages(session, status):
        """
        Title and per-participant message for a text session status
        
        Returns:
            tuple: (title, patient message, doctor message)
        """
        patient_name = session.patient.display_name()
        doctor_name = session.doctor.display_name()
        
        if status == 'waiting_for_doctor':
            return (
                "Text session requested",
                f"Your text session with Dr. {doctor_name} is waiting for the doctor to respond.",
                f"{patient_name} started a text session with you.",
            )
        if status == 'active':
            minutes = session.total_allowed_minutes()
            return (
                "Text session started",
                f"Dr. {doctor_name} joined the session. You have {minutes} minutes available.",
                f"Your text session with {patient_name} is now active ({minutes} minutes).",
            )
        if status == 'expired':
            return (
                "Text session expired",
                f"Dr. {doctor_name} did not respond in time. No session was deducted.",
                f"The text session with {patient_name} expired before you responded.",
            )
        used = session.sessions_used
        return (
            "Text session ended",
            f"Your text session with Dr. {doctor_name} has ended. {used} session(s) used.",
            f"Your text session with {patient_name} has ended. {used} session(s) billed.",
        )
    
    @staticmethod
    def notify_text_session(session, previous_status, status):
        """
        Create notifications for both participants of a text session transition
        
        Args:
            session: The TextSession that changed
            previous_status: Status before the transition, None on creation
            status: The new status
            
        Returns:
            list: The created notifications
        """
        title, patient_message, doctor_message = NotificationService.text_session_messages(session, status)
        data = {
            'session_id': session.pk,
            'previous_status': previous_status,
            'status': status,
            'end_reason': session.end_reason,
            'sessions_used': session.sessions_used,
        }
        
        notifications = []
        for recipient, message in ((session.patient, patient_message), (session.doctor, doctor_message)):
            notifications.append(NotificationService.create_notification(
                recipient=recipient,
                notification_type='text_session',
                title=title,
                message=message,
                related_object_type='text_session',
                related_object_id=session.pk,
                data=data
            ))
        return notifications
    
    @staticmethod
    def mark_all_read(user):
        """
        Mark all notifications as read for a user
        
        Returns:
            int: Number of notifications marked as read
        """
        return Notification.objects.filter(
            recipient=user,
            read_at__isnull=True
        ).update(read_at=timezone.now())
    
    @staticmethod
    def get_unread_count(user):
        return Notification.objects.filter(
            recipient=user,
            read_at__isnull=True
        ).count()
