import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'y', 'on')


class Config:
    """Defaults read from the environment (or a local .env file)."""

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///finance.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    # Falls back to SECRET_KEY when unset.
    JWT_SECRET = os.environ.get('JWT_SECRET')

    AUTH_COOKIE_NAME = os.environ.get('AUTH_COOKIE_NAME', 'token')
    AUTH_COOKIE_SECURE = _env_bool('AUTH_COOKIE_SECURE', False)
    SESSION_LIFETIME_HOURS = int(os.environ.get('SESSION_LIFETIME_HOURS', '24'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
