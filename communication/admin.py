# communication/admin.py
from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'recipient', 'notification_type', 'title', 'created_at', 'read_at')
    search_fields = ('recipient__username', 'title', 'message')
    list_filter = ('notification_type', 'created_at', 'read_at')
    readonly_fields = ('created_at', 'read_at')
