# text_sessions/tests/utils.py
"""
Helpers shared by the text session tests.
"""
from datetime import datetime, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model

from billing.models import Subscription

User = get_user_model()

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start=T0):
        self.current = start

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current

    def at(self, **kwargs):
        """Move to an offset from T0"""
        self.current = T0 + timedelta(**kwargs)
        return self.current


def create_patient(username='testpatient', credits=3, is_active=True, **kwargs):
    patient = User.objects.create_user(
        username=username,
        email=f'{username}@example.com',
        password='testpass123',
        role='patient',
        **kwargs
    )
    if credits is not None:
        Subscription.objects.create(
            patient=patient,
            plan_name='Basic',
            text_sessions_remaining=credits,
            is_active=is_active
        )
    return patient


def create_doctor(username='testdoctor', country='', **kwargs):
    return User.objects.create_user(
        username=username,
        email=f'{username}@example.com',
        password='testpass123',
        role='doctor',
        country=country,
        **kwargs
    )


def credits_left(patient):
    return Subscription.objects.get(patient=patient).text_sessions_remaining
