# text_sessions/apps.py
from django.apps import AppConfig

class TextSessionsConfig(AppConfig):
    """
    Live doctor-patient text consultations: the session state machine, time
    based billing and the background expiration sweep.
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'text_sessions'
