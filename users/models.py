# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """
    Extended User model with role-based access for patients and doctors
    """
    ROLE_CHOICES = [
        ('patient', 'Patient'),
        ('doctor', 'Doctor'),
        ('admin', 'Administrator'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='patient')
    phone_number = models.CharField(max_length=15, blank=True, null=True)
    # Drives the payout currency of a doctor's wallet
    country = models.CharField(max_length=100, blank=True, default='')

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_doctor(self):
        return self.role == 'doctor'

    @property
    def is_patient(self):
        return self.role == 'patient'

    def display_name(self):
        """Full name, falling back to the username"""
        return self.get_full_name() or self.username
