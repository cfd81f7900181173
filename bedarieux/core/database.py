import os
import uuid
import logging
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp (SQLite drops tzinfo, so every column stores naive UTC)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return str(uuid.uuid4())


def isoformat(value):
    """ISO string for an optional datetime, as returned in API payloads"""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def init_database(app):
    """Bind Flask-SQLAlchemy to the app and create the schema.

    Creates the SQLite directory on first use. Migrations for production
    databases are handled outside this package.
    """
    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///') and uri != 'sqlite:///:memory:':
        db_dir = os.path.dirname(uri[len('sqlite:///'):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    db.init_app(app)

    # Import models so their tables are registered on the metadata
    from . import logging_service  # noqa: F401
    from ..modules.content import models as content_models  # noqa: F401
    from ..modules.email import models as email_models  # noqa: F401
    from ..modules.newsletter import models as newsletter_models  # noqa: F401
    from ..modules.campaigns import models as campaign_models  # noqa: F401

    with app.app_context():
        db.create_all()
        logger.info("Newsletter database tables created/verified successfully")
