"""
Django settings for docavailable project.
"""

from pathlib import Path
from decimal import Decimal
import os
from dotenv import load_dotenv

# Load environment variables before using them
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-docavailable-dev-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')

# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'drf_yasg',
    'rest_framework.authtoken',

    # Project apps
    'billing',
    'communication',
    'text_sessions',
    'users',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# Billing audit logging
# Every wallet credit, subscription debit and settlement is written here
log_path = os.getenv('BILLING_AUDIT_LOG_PATH', 'logs/billing_audit.log')
# Strip any comments if present
if '#' in log_path:
    log_path = log_path.split('#')[0].strip()
# Convert to absolute path if it's relative
if not os.path.isabs(log_path):
    log_path = os.path.join(BASE_DIR, log_path)
# Ensure directory exists
os.makedirs(os.path.dirname(log_path), exist_ok=True)

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'billing': {
            'format': '{asctime} {levelname} {message}',
            'style': '{',
        },
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'billing_file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': log_path,  # Use the resolved path
            'formatter': 'billing',
            'maxBytes': 10485760,  # 10MB
            'backupCount': 10,
        },
    },
    'loggers': {
        'billing_audit': {
            'handlers': ['billing_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'text_sessions': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
        },
        'billing': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
        },
        'communication': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
        },
    },
}

ROOT_URLCONF = 'docavailable.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'docavailable.wsgi.application'

# Database configuration
if os.getenv('DB_ENGINE') == 'django.db.backends.postgresql':
    DATABASES = {
        'default': {
            'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.postgresql'),
            'NAME': os.getenv('DB_NAME', 'docavailable_db'),
            'USER': os.getenv('DB_USER', 'docavailable_user'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
        }
    }
else:
    # SQLite for development
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# Django REST Framework settings
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.TokenAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
}

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Swagger settings
SWAGGER_SETTINGS = {
    'DEFAULT_INFO': 'docavailable.urls.api_info',
    'DEFAULT_AUTO_SCHEMA_CLASS': 'drf_yasg.inspectors.SwaggerAutoSchema',
    'SECURITY_DEFINITIONS': {
        'Token': {
            'type': 'apiKey',
            'name': 'Authorization',
            'in': 'header'
        }
    },
    'USE_SESSION_AUTH': False,
    'PERSIST_AUTH': True,
    'DEFAULT_MODEL_RENDERING': 'model',
    'TAGS_SORTER': 'alpha',
    'OPERATIONS_SORTER': 'alpha',
    'DEFAULT_GENERATOR_CLASS': 'drf_yasg.generators.OpenAPISchemaGenerator',
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = os.getenv('STATIC_ROOT', BASE_DIR / 'staticfiles')

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Custom user model
AUTH_USER_MODEL = 'users.CustomUser'

# Celery
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'False').lower() == 'true'

# Text sessions
TEXT_SESSION_INTERVAL_MINUTES = int(os.getenv('TEXT_SESSION_INTERVAL_MINUTES', '10'))
TEXT_SESSION_DOCTOR_RESPONSE_SECONDS = int(os.getenv('TEXT_SESSION_DOCTOR_RESPONSE_SECONDS', '90'))
TEXT_SESSION_SWEEP_SECONDS = int(os.getenv('TEXT_SESSION_SWEEP_SECONDS', '30'))

# Doctor payout per billed text interval, keyed by wallet currency
TEXT_SESSION_PAYMENT_RATES = {
    'MWK': Decimal(os.getenv('TEXT_SESSION_RATE_MWK', '4000.00')),
    'USD': Decimal(os.getenv('TEXT_SESSION_RATE_USD', '4.00')),
}
# Doctors in these countries are paid in MWK, everyone else in USD
MWK_COUNTRIES = ('malawi',)

CELERY_BEAT_SCHEDULE = {
    'sweep-text-sessions': {
        'task': 'text_sessions.tasks.sweep_text_sessions',
        'schedule': float(TEXT_SESSION_SWEEP_SECONDS),
    },
}
