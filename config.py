import os
from dotenv import load_dotenv
from datetime import timedelta

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _email_list(value):
    return [email.strip().lower() for email in (value or "").split(",") if email.strip()]


class Config:
    PROPAGATE_EXCEPTIONS = True
    API_TITLE = "Bakery Storefront & Pickup Reservation API"
    API_VERSION = "v1"
    OPENAPI_VERSION = "3.0.3"
    OPENAPI_URL_PREFIX = "/"
    OPENAPI_SWAGGER_UI_PATH = "/swagger-ui"
    OPENAPI_SWAGGER_UI_URL = "https://cdn.jsdelivr.net/npm/swagger-ui-dist/"
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'b4k3ry-d3v-s3cr3t-k3y-ch4ng3-m3'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'bakery.db')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-me-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=30)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shop settings
    SHOP_TIMEZONE = os.environ.get('SHOP_TIMEZONE', 'Europe/Madrid')
    ADMIN_EMAILS = _email_list(os.environ.get('ADMIN_EMAILS'))
    DEFAULT_PICKUP_TIMESLOT = os.environ.get('DEFAULT_PICKUP_TIMESLOT', '08:00')
    MAX_RESERVATION_DAYS_AHEAD = int(os.environ.get('MAX_RESERVATION_DAYS_AHEAD', 14))
    # Same-day bakes are not recoverable, so cancelled units stay out of stock
    RESTOCK_ON_CANCEL = os.environ.get(
        'RESTOCK_ON_CANCEL', 'False').lower() in ['true', '1']

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(basedir, 'logs'))
    LOG_TO_FILE = os.environ.get(
        'LOG_TO_FILE', 'True').lower() in ['true', '1']


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///dev.db')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'  # Use in-memory SQLite database
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = 'testing-secret-key-with-enough-length-for-hs256'
    PRESERVE_CONTEXT_ON_EXCEPTION = False  # Don't preserve context on exception
    ADMIN_EMAILS = ['admin@obrador.test']
    RESTOCK_ON_CANCEL = False
    LOG_TO_FILE = False
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
