# config.py
import os
import secrets
from pathlib import Path
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'carbontrack.db')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Security settings
    SECURITY_PASSWORD_SALT = os.environ.get('SECURITY_PASSWORD_SALT', 'carbontrack-dev-salt')
    SECURITY_PASSWORD_HASH = 'bcrypt'
    # If SECRET_KEY is not provided via environment, generate it once and keep
    # it under instance/.flask_secret_key so restarts don't invalidate sessions.
    _secret_key_env = os.environ.get('SECRET_KEY')
    if _secret_key_env:
        SECRET_KEY = _secret_key_env
    else:
        _secret_file = Path(basedir) / 'instance' / '.flask_secret_key'
        if _secret_file.exists():
            SECRET_KEY = _secret_file.read_text().strip()
        else:
            _secret_file.parent.mkdir(parents=True, exist_ok=True)
            SECRET_KEY = secrets.token_hex(32)
            _secret_file.write_text(SECRET_KEY)

    SECURITY_REGISTERABLE = True
    SECURITY_SEND_REGISTER_EMAIL = False
    SECURITY_TOKEN_AUTHENTICATION_HEADER = 'Authentication-Token'
    SECURITY_CSRF_PROTECT_MECHANISMS = ('session',)
    SECURITY_CSRF_IGNORE_UNAUTH_ENDPOINTS = True
    WTF_CSRF_CHECK_DEFAULT = False

    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # APScheduler
    SCHEDULER_API_ENABLED = False
    SCHEDULER_TIMEZONE = 'UTC'

    # Goal deadline reminders
    REMINDER_SWEEP_ENABLED = os.environ.get('REMINDER_SWEEP_ENABLED', 'True').lower() == 'true'
    REMINDER_SWEEP_INTERVAL_MINUTES = int(os.environ.get('REMINDER_SWEEP_INTERVAL_MINUTES', 60))
    REMINDER_COOLDOWN_HOURS = int(os.environ.get('REMINDER_COOLDOWN_HOURS', 24))

    # Dashboards
    WEEKLY_CARBON_LIMIT_KG = float(os.environ.get('WEEKLY_CARBON_LIMIT_KG', 230))  # ~12 t/year per person
    NOTIFICATION_LIST_LIMIT = 50

    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')


class DevelopmentConfig(Config):
    DEBUG = True
    FLASK_ENV = 'development'


class ProductionConfig(Config):
    DEBUG = False
    FLASK_ENV = 'production'
    SESSION_COOKIE_SECURE = True

    if not os.environ.get('SECURITY_PASSWORD_SALT'):
        import warnings
        warnings.warn('SECURITY_PASSWORD_SALT not set. Using default value.')


# Function to get the appropriate config
def get_config():
    env = os.environ.get('FLASK_ENV', 'development').lower()
    if env == 'production':
        return ProductionConfig()
    return DevelopmentConfig()
