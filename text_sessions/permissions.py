# text_sessions/permissions.py
from rest_framework import permissions


class IsSessionParticipant(permissions.BasePermission):
    """
    Custom permission to only allow the patient and doctor of a text session to access it.
    """
    def has_object_permission(self, request, view, obj):
        # Staff can access anything
        if request.user.is_staff:
            return True

        return request.user == obj.patient or request.user == obj.doctor
