# communication/models.py
from django.db import models
from django.conf import settings
from django.utils import timezone


class Notification(models.Model):
    """
    User notifications for system events.
    
    Attributes:
        recipient (FK): The user receiving the notification
        notification_type (str): Type of notification (text_session, system)
        title (str): Short notification title
        message (str): Longer notification message
        created_at (datetime): When the notification was created
        read_at (datetime): When the notification was read (or null)
        related_object_type (str): Optional related model type
        related_object_id (int): Optional related object ID
        data (JSON): Additional data as JSON
    """
    NOTIFICATION_TYPES = [
        ('text_session', 'Text Session Update'),
        ('system', 'System Notification'),
    ]
    
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    notification_type = models.CharField(max_length=20, choices=NOTIFICATION_TYPES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)
    
    # Optional related objects for context
    related_object_type = models.CharField(max_length=50, blank=True, null=True)
    related_object_id = models.PositiveIntegerField(blank=True, null=True)
    
    # Additional data as JSON
    data = models.JSONField(default=dict, blank=True)
    
    class Meta:
        ordering = ['-created_at', '-id']
    
    def __str__(self):
        return f"{self.get_notification_type_display()} for {self.recipient.username}"
    
    def mark_read(self):
        """Mark the notification as read"""
        if not self.read_at:
            self.read_at = timezone.now()
            self.save(update_fields=['read_at'])
