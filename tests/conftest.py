"""
Shared fixtures: a fully initialised app on a throwaway SQLite database,
console email transport and no delay between sends.
"""

import os
import shutil
import tempfile

import pytest

from bedarieux import create_app
from bedarieux.core.database import db
from bedarieux.modules.campaigns.models import Campaign
from bedarieux.modules.newsletter.models import Subscriber, SubscriberPreferences


@pytest.fixture
def tmp_db_dir():
    """Create a temporary directory for test databases, cleaned up after."""
    d = tempfile.mkdtemp(prefix="bedarieux-test-")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def app(tmp_db_dir):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "DB_DIR": tmp_db_dir,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + os.path.join(tmp_db_dir, "newsletter.db"),
        "BASE_URL": "https://abc-bedarieux.fr",
        "EMAIL_PROVIDER": "console",
        "EMAIL_ADDRESS": "noreply@abc-bedarieux.fr",
        "NEWSLETTER_SEND_DELAY": 0,
        "NEWSLETTER_REDIRECT_DOMAINS": ["abc-bedarieux.fr", "www.abc-bedarieux.fr"],
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, role="admin", user_id="admin-1"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["user_email"] = f"{user_id}@abc-bedarieux.fr"
        sess["user_role"] = role


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    login(client)
    return client


@pytest.fixture
def make_subscriber(app):
    """Insert a subscriber directly and return its id"""
    def _make(email, first_name=None, is_active=True, is_verified=True, **preferences):
        with app.app_context():
            subscriber = Subscriber(
                email=email,
                first_name=first_name,
                is_active=is_active,
                is_verified=is_verified,
                unsubscribe_token=os.urandom(16).hex(),
            )
            subscriber.preferences = SubscriberPreferences(**preferences)
            db.session.add(subscriber)
            db.session.commit()
            return subscriber.id
    return _make


@pytest.fixture
def make_campaign(app):
    """Insert a campaign directly and return its id"""
    def _make(title="Les nouvelles de mars", subject="Newsletter de mars", **fields):
        fields.setdefault("content", "Bonjour {{FIRST_NAME}}, voici les nouvelles.")
        with app.app_context():
            campaign = Campaign(title=title, subject=subject, **fields)
            db.session.add(campaign)
            db.session.commit()
            return campaign.id
    return _make
