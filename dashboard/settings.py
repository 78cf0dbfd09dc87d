import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = os.environ.get('DJANGO_DEBUG', '0') == '1'
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'catalog',
]

if os.environ.get('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ['POSTGRES_DB'],
            'USER': os.environ.get('POSTGRES_USER', 'postgres'),
            'PASSWORD': os.environ.get('POSTGRES_PASSWORD', ''),
            'HOST': os.environ.get('POSTGRES_HOST', 'localhost'),
            'PORT': os.environ.get('POSTGRES_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'Asia/Ho_Chi_Minh'

# WooCommerce storefront; a project's own credentials take precedence.
WOOCOMMERCE_BASE_URL = os.environ.get('WOOCOMMERCE_BASE_URL', '')
WOOCOMMERCE_CONSUMER_KEY = os.environ.get('WOOCOMMERCE_CONSUMER_KEY', '')
WOOCOMMERCE_CONSUMER_SECRET = os.environ.get('WOOCOMMERCE_CONSUMER_SECRET', '')
WOOCOMMERCE_TIMEOUT = float(os.environ.get('WOOCOMMERCE_TIMEOUT', '30'))
WOOCOMMERCE_RATE_LIMIT = int(os.environ.get('WOOCOMMERCE_RATE_LIMIT', '5'))
WOOCOMMERCE_MAX_RETRIES = int(os.environ.get('WOOCOMMERCE_MAX_RETRIES', '3'))

CATALOG_ROW_LIMIT = int(os.environ.get('CATALOG_ROW_LIMIT', '1000'))
CATALOG_QUERY_TIMEOUT = float(os.environ.get('CATALOG_QUERY_TIMEOUT', '15'))
CATALOG_TOUCHED_TTL = float(os.environ.get('CATALOG_TOUCHED_TTL', '30'))
CATALOG_AUDIT_ENABLED = os.environ.get('CATALOG_AUDIT_ENABLED', 'true') != 'false'

CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', '0') == '1'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'default'},
    },
    'loggers': {
        'catalog': {'handlers': ['console'], 'level': os.environ.get('CATALOG_LOG_LEVEL', 'INFO')},
    },
}
