"""
Django settings for the storeclip project.

Everything the clip pipeline reads lives under the STORECLIP_* prefix and is
taken from the environment, so the CLI, the Huey consumer and the tests share
one configuration surface.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'storeclip-insecure-dev-key')
DEBUG = _env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'huey.contrib.djhuey',
    'clips',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('STORECLIP_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'

# Where downloads, intermediates and deliverables live
STORECLIP_MEDIA_DIR = Path(os.environ.get('STORECLIP_MEDIA_DIR', str(BASE_DIR / 'media_files')))

# Browser session
STORECLIP_BROWSER_EXECUTABLE_PATH = os.environ.get('STORECLIP_BROWSER_EXECUTABLE_PATH', '')
STORECLIP_SKIP_BROWSER_DOWNLOAD = _env_bool('STORECLIP_SKIP_BROWSER_DOWNLOAD', False)
STORECLIP_SESSION_COOKIES = os.environ.get('STORECLIP_SESSION_COOKIES', '')
STORECLIP_COOKIE_DOMAIN = os.environ.get('STORECLIP_COOKIE_DOMAIN', '')
STORECLIP_NAVIGATION_TIMEOUT = _env_int('STORECLIP_NAVIGATION_TIMEOUT', 30)
STORECLIP_SETTLE_DELAY = _env_int('STORECLIP_SETTLE_DELAY', 5)
STORECLIP_STATIC_FALLBACK = _env_bool('STORECLIP_STATIC_FALLBACK', True)

# Asset fetch
STORECLIP_DEFAULT_REFERER = os.environ.get('STORECLIP_DEFAULT_REFERER', 'https://shopee.com.br/')
STORECLIP_FETCH_TIMEOUT = _env_int('STORECLIP_FETCH_TIMEOUT', 300)

# Transcode
STORECLIP_SCALING_POLICY = os.environ.get('STORECLIP_SCALING_POLICY', 'preserve')
STORECLIP_MIN_HEIGHT = _env_int('STORECLIP_MIN_HEIGHT', 720)
STORECLIP_REMOVE_WATERMARK = _env_bool('STORECLIP_REMOVE_WATERMARK', False)
STORECLIP_DEFAULT_FFMPEG_ARGS_VIDEO = os.environ.get(
    'STORECLIP_DEFAULT_FFMPEG_ARGS_VIDEO',
    '-c:v libx264 -preset medium -crf 20 -profile:v high -level 4.0 -pix_fmt yuv420p '
    '-c:a aac -b:a 192k -movflags +faststart',
)
STORECLIP_ENCODE_TIMEOUT = _env_int('STORECLIP_ENCODE_TIMEOUT', 900)
STORECLIP_ENCODE_CONCURRENCY = _env_int('STORECLIP_ENCODE_CONCURRENCY', 2)

# Retention
STORECLIP_MAX_AGE_HOURS = _env_int('STORECLIP_MAX_AGE_HOURS', 24)

# Usage ledger collaborator (dotted path to a class)
STORECLIP_LEDGER_CLASS = os.environ.get('STORECLIP_LEDGER_CLASS', 'clips.service.ledger.UnlimitedLedger')

# Worker pool: each request holds one browser and at most one encoder
STORECLIP_WORKERS = _env_int('STORECLIP_WORKERS', 2)

HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'storeclip',
    'filename': os.environ.get('STORECLIP_HUEY_DB', str(BASE_DIR / 'huey.sqlite3')),
    'immediate': _env_bool('STORECLIP_HUEY_IMMEDIATE', DEBUG),
    'consumer': {
        'workers': STORECLIP_WORKERS,
        'worker_type': 'thread',
    },
}
