# billing/permissions.py
from rest_framework import permissions

class IsDoctor(permissions.BasePermission):
    """
    Custom permission to only allow doctors to access wallet endpoints.
    """
    message = 'Only doctors can access wallet'

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == 'doctor'


class IsPatient(permissions.BasePermission):
    """
    Custom permission to only allow patients to access subscription endpoints.
    """
    message = 'Only patients have subscriptions'

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == 'patient'
