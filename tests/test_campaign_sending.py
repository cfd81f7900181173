"""
Send orchestration: recipients, per-subscriber records, partial failures,
campaign state transitions and the manual resend of failed sends.
"""

from unittest.mock import patch, MagicMock

import pytest

from bedarieux.core.database import db
from bedarieux.core.errors import MailTransportError
from bedarieux.modules.campaigns.models import (
    Campaign, CampaignSent, DRAFT, SENT, SENDING, ARCHIVED, PROMOTIONAL,
    SEND_DELIVERED, SEND_FAILED,
)
from bedarieux.modules.campaigns.repository import CampaignRepository
from bedarieux.modules.campaigns.sender import CampaignSender
from bedarieux.modules.content.repository import ContentRepository
from bedarieux.modules.email.email_service import email_service
from bedarieux.modules.newsletter.models import Subscriber
from bedarieux.modules.newsletter.repository import SubscriberRepository


def _send(client, campaign_id):
    return client.post(f"/api/admin/newsletter/campaigns/{campaign_id}/send")


def _records(app, campaign_id):
    with app.app_context():
        rows = db.session.query(CampaignSent).filter_by(campaign_id=campaign_id).all()
        return {row.subscriber_id: (row.status, row.error_message) for row in rows}


def _campaign(app, campaign_id):
    with app.app_context():
        return db.session.get(Campaign, campaign_id)


def test_send_to_three_subscribers_with_second_failing(app, admin_client, make_subscriber, make_campaign):
    first = make_subscriber("first@x.com", first_name="Un")
    second = make_subscriber("second@x.com", first_name="Deux")
    third = make_subscriber("third@x.com", first_name="Trois")
    campaign_id = make_campaign()

    def flaky(to, subject, html_body, text_body=None, email_type=None):
        if to == "second@x.com":
            raise MailTransportError("Mailbox unavailable")
        return "msg-id"

    with patch.object(email_service, "send_email", side_effect=flaky):
        response = _send(admin_client, campaign_id)

    assert response.status_code == 200
    data = response.get_json()
    assert data["attempted"] == 3
    assert data["sent"] == 2
    assert data["errors"] == 1
    assert data["errorMessages"] == ["second@x.com: Mailbox unavailable"]

    records = _records(app, campaign_id)
    assert records[first] == (SEND_DELIVERED, None)
    assert records[third] == (SEND_DELIVERED, None)
    status, error = records[second]
    assert status == SEND_FAILED
    assert error == "Mailbox unavailable"

    campaign = _campaign(app, campaign_id)
    assert campaign.status == SENT
    assert campaign.sent_at is not None
    assert campaign.total_recipients == 3
    assert campaign.total_sent == 3
    assert campaign.total_delivered == 2


def test_inactive_and_unverified_subscribers_get_no_record(app, admin_client, make_subscriber, make_campaign):
    active = make_subscriber("active@x.com")
    inactive = make_subscriber("inactive@x.com", is_active=False)
    unverified = make_subscriber("unverified@x.com", is_verified=False)
    campaign_id = make_campaign()

    response = _send(admin_client, campaign_id)
    assert response.status_code == 200

    records = _records(app, campaign_id)
    assert set(records) == {active}
    assert inactive not in records
    assert unverified not in records


def test_preferences_filter_recipients(app, admin_client, make_subscriber, make_campaign):
    wants_offers = make_subscriber("offers@x.com", offers=True)
    make_subscriber("no-offers@x.com", offers=False)
    campaign_id = make_campaign(type=PROMOTIONAL)

    _send(admin_client, campaign_id)

    assert set(_records(app, campaign_id)) == {wants_offers}


def test_personalised_html_is_sent(admin_client, make_subscriber, make_campaign):
    subscriber_id = make_subscriber("anne@x.com", first_name="Anne")
    campaign_id = make_campaign(content="Salut {{FIRST_NAME}} !")

    with patch.object(email_service, "send_email", return_value="msg-id") as send:
        _send(admin_client, campaign_id)

    to, subject, html_body = send.call_args[0][:3]
    assert to == "anne@x.com"
    assert subject == "Newsletter de mars"
    assert "Salut Anne !" in html_body
    assert "Bonjour Anne," in html_body
    assert f"/api/newsletter/track/open?c={campaign_id}&s={subscriber_id}" in html_body
    assert f"/api/newsletter/web-view?c={campaign_id}&s={subscriber_id}" in html_body
    assert "/newsletter/unsubscribe?token=" in html_body


def test_send_without_recipients_is_rejected(app, admin_client, make_campaign):
    campaign_id = make_campaign()

    response = _send(admin_client, campaign_id)

    assert response.status_code == 400
    assert _campaign(app, campaign_id).status == DRAFT


def test_send_unknown_campaign(admin_client):
    assert _send(admin_client, "missing").status_code == 404


@pytest.mark.parametrize("status", [SENT, SENDING, ARCHIVED])
def test_send_rejects_campaign_not_draft_or_scheduled(admin_client, make_subscriber, make_campaign, status):
    make_subscriber("anne@x.com")
    campaign_id = make_campaign(status=status)

    assert _send(admin_client, campaign_id).status_code == 400


def test_resend_failed_retries_only_failed_records(app, admin_client, make_subscriber, make_campaign):
    make_subscriber("ok@x.com")
    failing = make_subscriber("retry@x.com")
    campaign_id = make_campaign()

    def flaky(to, subject, html_body, text_body=None, email_type=None):
        if to == "retry@x.com":
            raise MailTransportError("Timeout")
        return "msg-id"

    with patch.object(email_service, "send_email", side_effect=flaky):
        _send(admin_client, campaign_id)

    with patch.object(email_service, "send_email", return_value="msg-id") as send:
        response = admin_client.post(f"/api/admin/newsletter/campaigns/{campaign_id}/resend-failed")

    assert response.status_code == 200
    data = response.get_json()
    assert data["attempted"] == 1
    assert data["sent"] == 1
    assert send.call_count == 1
    assert send.call_args[0][0] == "retry@x.com"
    assert _records(app, campaign_id)[failing] == (SEND_DELIVERED, None)
    assert _campaign(app, campaign_id).total_delivered == 2


def test_resend_failed_requires_sent_campaign(admin_client, make_campaign):
    campaign_id = make_campaign()
    response = admin_client.post(f"/api/admin/newsletter/campaigns/{campaign_id}/resend-failed")
    assert response.status_code == 400


def test_delivered_send_updates_last_email_sent(app, admin_client, make_subscriber, make_campaign):
    subscriber_id = make_subscriber("anne@x.com")
    campaign_id = make_campaign()

    _send(admin_client, campaign_id)

    with app.app_context():
        assert db.session.get(Subscriber, subscriber_id).last_email_sent is not None


# ---------------------------------------------------------------------------
# CampaignSender with collaborators passed in
# ---------------------------------------------------------------------------

def test_sender_sleeps_between_sends_only(app, make_subscriber, make_campaign):
    make_subscriber("one@x.com")
    make_subscriber("two@x.com")
    make_subscriber("three@x.com")
    campaign_id = make_campaign()

    mailer = MagicMock()
    sleep = MagicMock()
    with app.test_request_context("/"):
        sender = CampaignSender(
            campaigns=CampaignRepository(db.session),
            subscribers=SubscriberRepository(db.session),
            content=ContentRepository(db.session),
            mailer=mailer,
            base_url="https://abc-bedarieux.fr",
            delay=0.5,
            sleep=sleep,
        )
        summary = sender.send(campaign_id)

    assert summary["sent"] == 3
    assert mailer.send_email.call_count == 3
    assert sleep.call_count == 2
    sleep.assert_called_with(0.5)


def test_sender_limits_error_messages(app, make_subscriber, make_campaign):
    for i in range(4):
        make_subscriber(f"s{i}@x.com")
    campaign_id = make_campaign()

    mailer = MagicMock()
    mailer.send_email.side_effect = MailTransportError("refused")
    with app.test_request_context("/"):
        sender = CampaignSender(
            campaigns=CampaignRepository(db.session),
            subscribers=SubscriberRepository(db.session),
            content=ContentRepository(db.session),
            mailer=mailer,
            base_url="https://abc-bedarieux.fr",
            error_limit=2,
        )
        summary = sender.send(campaign_id)

    assert summary["attempted"] == 4
    assert summary["errors"] == 4
    assert len(summary["errorMessages"]) == 2
    assert _campaign(app, campaign_id).status == SENT
