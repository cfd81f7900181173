import os
from dotenv import load_dotenv

load_dotenv(override=True)


def _env_bool(name, default='false'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


def _env_list(name, default=''):
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


class Config:
    """
    Base configuration for the ABC Bédarieux newsletter platform.
    Values set on app.config before Bedarieux(app) is called take precedence.
    """
    # Flask settings
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY')

    # Get DB_DIR from environment, or use a default if not set
    DB_DIR = os.getenv('DB_DIR', os.path.join(os.getcwd(), 'databases'))

    DATABASE_URL = os.getenv('DATABASE_URL')

    # Public site URL, used to build tracking, web-view and unsubscribe links
    BASE_URL = os.getenv('BASE_URL', 'https://abc-bedarieux.fr')

    # Email settings
    EMAIL_PROVIDER = os.getenv('EMAIL_PROVIDER', 'console')
    EMAIL_ADDRESS = os.getenv('EMAIL_ADDRESS', 'noreply@abc-bedarieux.fr')
    EMAIL_FROM_NAME = os.getenv('EMAIL_FROM_NAME', 'ABC Bédarieux')
    EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
    EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
    EMAIL_USERNAME = os.getenv('EMAIL_USERNAME')
    EMAIL_PASSWORD = os.getenv('EMAIL_PASSWORD')
    EMAIL_USE_TLS = _env_bool('EMAIL_USE_TLS', 'true')

    # Resend API settings
    RESEND_API_KEY = os.getenv('RESEND_API_KEY') or os.getenv('RESEND')

    # Branding
    EMAIL_BRAND_NAME = os.getenv('EMAIL_BRAND_NAME', 'ABC Bédarieux')
    EMAIL_BRAND_TAGLINE = os.getenv('EMAIL_BRAND_TAGLINE', 'Association Bédaricienne des Commerçants')

    # Newsletter pipeline
    # Seconds between two sends in a batch (SMTP providers throttle bursts)
    NEWSLETTER_SEND_DELAY = float(os.getenv('NEWSLETTER_SEND_DELAY', '0.6'))
    NEWSLETTER_SUMMARY_ERROR_LIMIT = int(os.getenv('NEWSLETTER_SUMMARY_ERROR_LIMIT', '5'))
    NEWSLETTER_STATS_ERROR_LIMIT = int(os.getenv('NEWSLETTER_STATS_ERROR_LIMIT', '10'))
    NEWSLETTER_STATS_ACTIVITY_LIMIT = int(os.getenv('NEWSLETTER_STATS_ACTIVITY_LIMIT', '20'))
    NEWSLETTER_REDIRECT_DOMAINS = _env_list(
        'NEWSLETTER_REDIRECT_DOMAINS',
        'abc-bedarieux.fr,www.abc-bedarieux.fr,localhost:3000,localhost:5000,127.0.0.1:5000'
    )
    NEWSLETTER_ADMIN_ROLES = _env_list('NEWSLETTER_ADMIN_ROLES', 'admin,moderator,editor')

    # Public API (subscribe, gdpr) may be called from the front-end domain
    CORS_ORIGINS = _env_list('CORS_ORIGINS', '*')

    LOG_RETENTION_DAYS = int(os.getenv('LOG_RETENTION_DAYS', '30'))

    # Port for local server
    port = int(os.getenv('PORT', '5000'))

    @classmethod
    def database_uri(cls, db_dir=None):
        """DATABASE_URL wins; otherwise a SQLite file under DB_DIR"""
        if cls.DATABASE_URL:
            return cls.DATABASE_URL
        return 'sqlite:///' + os.path.join(db_dir or cls.DB_DIR, 'newsletter.db')

    @classmethod
    def as_dict(cls):
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper()
        }
