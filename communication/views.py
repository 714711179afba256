# communication/views.py
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema

from .models import Notification
from .serializers import NotificationSerializer
from .services.notification_service import NotificationService


class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    API endpoints for user notifications.
    
    list:
    Returns a list of notifications for the current user.
    
    retrieve:
    Returns a notification by ID if the user is the recipient.
    """
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    
    def get_queryset(self):
        """Get notifications for the current user"""
        return Notification.objects.filter(recipient=self.request.user)
    
    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        """
        Mark a notification as read.
        """
        notification = self.get_object()
        notification.mark_read()
        serializer = self.get_serializer(notification)
        return Response(serializer.data)
    
    @swagger_auto_schema(operation_description="Mark all notifications of the current user as read")
    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        count = NotificationService.mark_all_read(request.user)
        return Response({
            'status': 'success',
            'count': count,
            'message': f'Marked {count} notifications as read'
        })
    
    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        return Response({'count': NotificationService.get_unread_count(request.user)})
