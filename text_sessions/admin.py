# text_sessions/admin.py
from django.contrib import admin
from .models import TextSession


@admin.register(TextSession)
class TextSessionAdmin(admin.ModelAdmin):
    """Sessions are inspected here; state only changes through the lifecycle service"""
    list_display = (
        'id', 'patient', 'doctor', 'status', 'end_reason', 'started_at',
        'ended_at', 'sessions_remaining_before_start', 'sessions_used', 'sessions_debited'
    )
    list_filter = ('status', 'end_reason')
    search_fields = ('patient__username', 'doctor__username', 'reason')
    raw_id_fields = ('patient', 'doctor')
    readonly_fields = [f.name for f in TextSession._meta.fields]
    date_hierarchy = 'started_at'
