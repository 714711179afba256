# text_sessions/tests/conftest.py
"""
Fixtures for text session tests.
"""
import pytest
from rest_framework.test import APIClient

from text_sessions.services.lifecycle_service import SessionLifecycleController
from text_sessions.views import TextSessionViewSet
from .utils import FakeClock, create_doctor, create_patient

# ================= Time =================

@pytest.fixture
def clock():
    """A FakeClock starting at T0"""
    return FakeClock()

@pytest.fixture
def controller(clock):
    return SessionLifecycleController(clock=clock)

# ================= User fixtures =================

@pytest.fixture
def patient_user(db):
    """Patient with three text sessions left"""
    return create_patient()

@pytest.fixture
def doctor_user(db):
    return create_doctor()

@pytest.fixture
def waiting_session(controller, patient_user, doctor_user):
    return controller.start(patient_user, doctor_user)

@pytest.fixture
def active_session(controller, waiting_session):
    controller.on_first_patient_message(waiting_session)
    controller.on_doctor_message(waiting_session)
    return waiting_session

# ================= API Client fixtures =================

@pytest.fixture
def api_client(clock, monkeypatch):
    """API client whose text session endpoints run on the fake clock"""
    monkeypatch.setattr(TextSessionViewSet, 'clock', clock)
    return APIClient()

@pytest.fixture
def patient_client(api_client, patient_user):
    api_client.force_authenticate(user=patient_user)
    return api_client
