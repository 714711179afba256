# users/apps.py
from django.apps import AppConfig

class UsersConfig(AppConfig):
    """
    Application configuration for the users app.
    
    This app holds the custom user model shared by patients, doctors and
    administrators.
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'users'
