"""
Open and click tracking, and the web-view page.
"""

import pytest

from bedarieux.core.database import db
from bedarieux.modules.campaigns.models import (
    Campaign, CampaignSent, SENT, SEND_DELIVERED, SEND_OPENED, SEND_CLICKED, SEND_FAILED,
)
from bedarieux.modules.tracking.routes import TRACKING_PIXEL
from bedarieux.modules.tracking.tracker import CampaignTracker


@pytest.fixture
def sent_pair(app, make_subscriber, make_campaign):
    """A SENT campaign with one DELIVERED record; returns (campaign_id, subscriber_id)"""
    subscriber_id = make_subscriber("anne@x.com", first_name="Anne")
    campaign_id = make_campaign(status=SENT)
    with app.app_context():
        db.session.add(CampaignSent(campaign_id=campaign_id, subscriber_id=subscriber_id,
                                    status=SEND_DELIVERED))
        db.session.commit()
    return campaign_id, subscriber_id


def _record(app, campaign_id, subscriber_id):
    with app.app_context():
        return db.session.get(CampaignSent, (campaign_id, subscriber_id))


def _campaign(app, campaign_id):
    with app.app_context():
        return db.session.get(Campaign, campaign_id)


# ---------------------------------------------------------------------------
# Pixel
# ---------------------------------------------------------------------------

def test_pixel_marks_first_open_only(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair

    response = client.get(f"/api/newsletter/track/open?c={campaign_id}&s={subscriber_id}")
    assert response.status_code == 200
    assert response.mimetype == "image/gif"
    assert response.data == TRACKING_PIXEL
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    first = _record(app, campaign_id, subscriber_id)
    assert first.status == SEND_OPENED
    assert first.opened_at is not None
    assert _campaign(app, campaign_id).total_opened == 1

    client.get(f"/api/newsletter/track/open?c={campaign_id}&s={subscriber_id}")

    second = _record(app, campaign_id, subscriber_id)
    assert second.opened_at == first.opened_at
    assert _campaign(app, campaign_id).total_opened == 1


def test_pixel_alias_path(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair

    response = client.get(f"/api/newsletter/tracking/open?c={campaign_id}&s={subscriber_id}")

    assert response.status_code == 200
    assert _record(app, campaign_id, subscriber_id).opened_at is not None


@pytest.mark.parametrize("query", ["", "?c=abc", "?s=abc", "?c=unknown&s=unknown"])
def test_pixel_always_answers_gif(client, query):
    response = client.get(f"/api/newsletter/track/open{query}")
    assert response.status_code == 200
    assert response.mimetype == "image/gif"
    assert response.data == TRACKING_PIXEL


def test_pixel_after_click_keeps_clicked_status(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair
    client.get(f"/api/newsletter/track/click?c={campaign_id}&s={subscriber_id}"
               f"&url=https://abc-bedarieux.fr/events/fete")

    client.get(f"/api/newsletter/track/open?c={campaign_id}&s={subscriber_id}")

    assert _record(app, campaign_id, subscriber_id).status == SEND_CLICKED


def test_open_on_failed_record_keeps_failed_status(app, client, make_subscriber, make_campaign):
    subscriber_id = make_subscriber("anne@x.com")
    campaign_id = make_campaign(status=SENT)
    with app.app_context():
        db.session.add(CampaignSent(campaign_id=campaign_id, subscriber_id=subscriber_id,
                                    status=SEND_FAILED, error_message="mailbox full"))
        db.session.commit()

    client.get(f"/api/newsletter/track/open?c={campaign_id}&s={subscriber_id}")

    record = _record(app, campaign_id, subscriber_id)
    assert record.status == SEND_FAILED
    assert record.opened_at is not None
    assert record.error_message == "mailbox full"

    client.get(f"/api/newsletter/track/click?c={campaign_id}&s={subscriber_id}"
               f"&url=https://abc-bedarieux.fr/events/fete")

    record = _record(app, campaign_id, subscriber_id)
    assert record.status == SEND_FAILED
    assert record.clicked_at is not None
    assert _campaign(app, campaign_id).total_delivered == 0


# ---------------------------------------------------------------------------
# Click
# ---------------------------------------------------------------------------

def test_click_records_and_redirects(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair
    target = "https://abc-bedarieux.fr/events/fete"

    response = client.get(f"/api/newsletter/track/click?c={campaign_id}&s={subscriber_id}&url={target}")

    assert response.status_code == 302
    assert response.headers["Location"] == target

    record = _record(app, campaign_id, subscriber_id)
    assert record.status == SEND_CLICKED
    assert record.clicked_at is not None
    assert record.opened_at is not None

    campaign = _campaign(app, campaign_id)
    assert campaign.total_clicked == 1
    assert campaign.total_opened == 1


def test_click_to_foreign_host_goes_to_site_root(client, sent_pair):
    campaign_id, subscriber_id = sent_pair

    response = client.get(f"/api/newsletter/track/click?c={campaign_id}&s={subscriber_id}"
                          f"&url=https://evil.example.com/phish")

    assert response.status_code == 302
    assert response.headers["Location"] == "https://abc-bedarieux.fr/"


def test_click_without_ids_still_redirects(client):
    response = client.get("/api/newsletter/track/click?url=https://abc-bedarieux.fr/posts/x")
    assert response.status_code == 302
    assert response.headers["Location"] == "https://abc-bedarieux.fr/posts/x"


@pytest.mark.parametrize("url", [
    "javascript:alert(1)",
    "//evil.example.com",
    "https://abc-bedarieux.fr.evil.example.com/",
    "",
])
def test_safe_redirect_rejects(url):
    tracker = CampaignTracker(None, ["abc-bedarieux.fr"], "https://abc-bedarieux.fr/")
    assert tracker.safe_redirect(url) == "https://abc-bedarieux.fr/"


def test_safe_redirect_accepts_host_with_port():
    tracker = CampaignTracker(None, ["localhost:3000"], "http://localhost:3000")
    assert tracker.safe_redirect("http://localhost:3000/events") == "http://localhost:3000/events"


# ---------------------------------------------------------------------------
# Web-view
# ---------------------------------------------------------------------------

def test_web_view_renders_and_counts_open(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair

    response = client.get(f"/api/newsletter/web-view?c={campaign_id}&s={subscriber_id}")

    assert response.status_code == 200
    assert response.mimetype == "text/html"
    html = response.get_data(as_text=True)
    assert "Bonjour Anne," in html
    assert "/api/newsletter/track/open" not in html
    assert "Voir dans le navigateur" not in html

    assert _record(app, campaign_id, subscriber_id).opened_at is not None
    assert _campaign(app, campaign_id).total_opened == 1


def test_web_view_missing_params(client):
    response = client.get("/api/newsletter/web-view?c=abc")
    assert response.status_code == 400
    assert response.mimetype == "text/html"


def test_web_view_unknown_ids(client, sent_pair):
    campaign_id, _ = sent_pair
    response = client.get(f"/api/newsletter/web-view?c={campaign_id}&s=unknown")
    assert response.status_code == 404
    assert response.mimetype == "text/html"
    assert "introuvable" in response.get_data(as_text=True)


def test_web_view_on_failed_record_keeps_failed_status(app, client, sent_pair):
    campaign_id, subscriber_id = sent_pair
    with app.app_context():
        record = db.session.get(CampaignSent, (campaign_id, subscriber_id))
        record.status = SEND_FAILED
        db.session.commit()

    response = client.get(f"/api/newsletter/web-view?c={campaign_id}&s={subscriber_id}")

    assert response.status_code == 200
    record = _record(app, campaign_id, subscriber_id)
    assert record.status == SEND_FAILED
    assert record.opened_at is not None
