"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Public base URL (tracking pixel / redirect links in outgoing messages)
    APP_BASE_URL = os.getenv('APP_BASE_URL', 'http://localhost:5000')

    # Shared secret for cron-triggered sync endpoints (empty = not enforced)
    CRON_SECRET = os.getenv('CRON_SECRET', '')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'ebd')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'ebd')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'ebd')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Bling ERP (API v3)
    BLING_API_URL = os.getenv('BLING_API_URL', 'https://www.bling.com.br/Api/v3')
    BLING_TOKEN_URL = os.getenv('BLING_TOKEN_URL', 'https://www.bling.com.br/Api/v3/oauth/token')
    BLING_REDIRECT_URI = os.getenv('BLING_REDIRECT_URI')
    BLING_REQUEST_INTERVAL = float(os.getenv('BLING_REQUEST_INTERVAL', '0.34'))  # ~3 req/s
    BLING_MAX_RETRIES = int(os.getenv('BLING_MAX_RETRIES', '3'))
    BLING_BACKOFF_SECONDS = float(os.getenv('BLING_BACKOFF_SECONDS', '3'))
    PROVIDER_RETRY_DELAY = float(os.getenv('PROVIDER_RETRY_DELAY', '1'))
    PROVIDER_TIMEOUT = float(os.getenv('PROVIDER_TIMEOUT', '15'))
    TOKEN_EXPIRY_BUFFER_SECONDS = int(os.getenv('TOKEN_EXPIRY_BUFFER_SECONDS', '300'))

    # Batched sync flows
    SYNC_PAGE_SIZE = int(os.getenv('SYNC_PAGE_SIZE', '50'))
    SYNC_STALE_MINUTES = int(os.getenv('SYNC_STALE_MINUTES', '30'))

    # Mercado Pago
    MP_ACCESS_TOKEN = os.getenv('MP_ACCESS_TOKEN')
    MP_WEBHOOK_SECRET = os.getenv('MP_WEBHOOK_SECRET')

    # Shopify
    SHOPIFY_SHOP_DOMAIN = os.getenv('SHOPIFY_SHOP_DOMAIN', '')
    SHOPIFY_ADMIN_TOKEN = os.getenv('SHOPIFY_ADMIN_TOKEN', '')
    SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2024-10')
    SHOPIFY_WEBHOOK_SECRET = os.getenv('SHOPIFY_WEBHOOK_SECRET', '')

    # Email: 'resend' (HTTP API) or 'smtp' (Flask-Mail)
    EMAIL_PROVIDER = os.getenv('EMAIL_PROVIDER', 'resend')
    RESEND_API_KEY = os.getenv('RESEND_API_KEY', '')
    RESEND_API_URL = os.getenv('RESEND_API_URL', 'https://api.resend.com/emails')
    EMAIL_FROM = os.getenv('EMAIL_FROM', 'EBD <no-reply@localhost>')

    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

    # WhatsApp (Meta Cloud API)
    WHATSAPP_TOKEN = os.getenv('WHATSAPP_TOKEN', '')
    WHATSAPP_PHONE_NUMBER_ID = os.getenv('WHATSAPP_PHONE_NUMBER_ID', '')
    WHATSAPP_API_VERSION = os.getenv('WHATSAPP_API_VERSION', 'v21.0')

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_COMMISSIONS_TTL = int(os.getenv('CACHE_COMMISSIONS_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'ebd')


class TestingConfig(Config):
    """Configuration used by the test-suite (in-memory SQLite, no side effects)."""

    TESTING = True
    DEBUG = False
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    CRON_SECRET = ''
    MP_WEBHOOK_SECRET = None
    SHOPIFY_WEBHOOK_SECRET = ''
    BLING_REQUEST_INTERVAL = 0
    BLING_BACKOFF_SECONDS = 0
    PROVIDER_RETRY_DELAY = 0
