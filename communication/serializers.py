# communication/serializers.py
from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    """
    Serializer for user notifications.
    """
    notification_type_display = serializers.CharField(
        source='get_notification_type_display', 
        read_only=True,
        help_text="Human-readable notification type"
    )
    
    class Meta:
        model = Notification
        fields = [
            'id', 'recipient', 'notification_type', 'notification_type_display',
            'title', 'message', 'created_at', 'read_at',
            'related_object_type', 'related_object_id', 'data'
        ]
        read_only_fields = fields
