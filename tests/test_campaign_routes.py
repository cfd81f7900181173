"""
Campaign admin API: CRUD, archive, preview, test email and content listing.
"""

from datetime import datetime
from unittest.mock import patch

import pytest
from conftest import login

from bedarieux.core.database import db
from bedarieux.core.errors import MailTransportError
from bedarieux.modules.campaigns.models import (
    Campaign, CampaignSent, SENT, DRAFT, SCHEDULED, ARCHIVED, SEND_DELIVERED,
)
from bedarieux.modules.content.models import Event, Place, Post
from bedarieux.modules.email.email_service import email_service

CAMPAIGNS = "/api/admin/newsletter/campaigns"

CAMPAIGN_BODY = {
    "title": "Marché de printemps",
    "subject": "Le marché de printemps arrive",
    "content": "Bonjour {{FIRST_NAME}},\nRendez-vous place de la Vierge.",
}


def _add_content(app):
    with app.app_context():
        event = Event(title="Fête de la musique", slug="fete-musique",
                      start_date=datetime(2026, 6, 21, 18, 0), location_city="Bédarieux")
        place = Place(name="Boulangerie Martin", slug="boulangerie-martin", city="Bédarieux")
        post = Post(title="Bilan de l'année", slug="bilan", published_at=datetime(2026, 1, 5))
        db.session.add_all([event, place, post])
        db.session.commit()
        return event.id, place.id, post.id


# ---------------------------------------------------------------------------
# Create / list / detail
# ---------------------------------------------------------------------------

def test_create_campaign(admin_client):
    response = admin_client.post(CAMPAIGNS, json=CAMPAIGN_BODY)

    assert response.status_code == 201
    campaign = response.get_json()["campaign"]
    assert campaign["status"] == DRAFT
    assert campaign["type"] == "NEWSLETTER"
    assert campaign["createdById"] == "admin-1"
    assert campaign["totalSent"] == 0


def test_create_scheduled_campaign(admin_client):
    body = dict(CAMPAIGN_BODY, scheduledAt="2026-11-01T09:00:00Z")

    response = admin_client.post(CAMPAIGNS, json=body)

    campaign = response.get_json()["campaign"]
    assert campaign["status"] == SCHEDULED
    assert campaign["scheduledAt"] == "2026-11-01T09:00:00"


def test_create_campaign_validation(admin_client):
    response = admin_client.post(CAMPAIGNS, json={
        "subject": "Bad\r\nBcc: someone@x.com",
        "type": "SPAM",
        "includedEvents": "not-a-list",
        "status": "SENT",
    })

    assert response.status_code == 400
    fields = response.get_json()["fields"]
    assert set(fields) >= {"title", "subject", "type", "includedEvents", "status"}


def test_create_with_attachments(admin_client):
    body = dict(CAMPAIGN_BODY, attachments=[
        {"id": "f1", "name": "programme.pdf", "type": "application/pdf", "size": 2048,
         "url": "/uploads/programme.pdf"},
    ])

    response = admin_client.post(CAMPAIGNS, json=body)

    attachments = response.get_json()["campaign"]["attachments"]
    assert len(attachments) == 1
    assert attachments[0]["originalName"] == "programme.pdf"
    assert attachments[0]["uploadedBy"] == "admin-1"


def test_list_campaigns_paginated(admin_client, make_campaign):
    for i in range(3):
        make_campaign(title=f"Campagne {i}")
    make_campaign(title="Envoyée", status=SENT)

    response = admin_client.get(f"{CAMPAIGNS}?limit=2")
    data = response.get_json()
    assert len(data["campaigns"]) == 2
    assert data["pagination"]["totalCount"] == 4
    assert data["pagination"]["totalPages"] == 2
    assert data["pagination"]["hasNextPage"] is True

    response = admin_client.get(f"{CAMPAIGNS}?status=SENT")
    titles = [c["title"] for c in response.get_json()["campaigns"]]
    assert titles == ["Envoyée"]


def test_campaign_detail_has_recipient_estimate(admin_client, make_subscriber, make_campaign):
    make_subscriber("one@x.com")
    make_subscriber("two@x.com", news=False)
    make_subscriber("off@x.com", is_active=False)
    campaign_id = make_campaign()

    response = admin_client.get(f"{CAMPAIGNS}/{campaign_id}")

    assert response.status_code == 200
    assert response.get_json()["potentialRecipients"] == 1


def test_campaign_detail_unknown(admin_client):
    assert admin_client.get(f"{CAMPAIGNS}/missing").status_code == 404


# ---------------------------------------------------------------------------
# Update / delete / archive
# ---------------------------------------------------------------------------

def test_update_draft(app, admin_client, make_campaign):
    campaign_id = make_campaign()

    response = admin_client.put(f"{CAMPAIGNS}/{campaign_id}", json={"subject": "Nouveau sujet"})

    assert response.status_code == 200
    campaign = response.get_json()["campaign"]
    assert campaign["subject"] == "Nouveau sujet"
    assert campaign["title"] == "Les nouvelles de mars"


def test_sent_campaign_is_immutable(admin_client, make_campaign):
    campaign_id = make_campaign(status=SENT)

    response = admin_client.put(f"{CAMPAIGNS}/{campaign_id}", json={"subject": "Trop tard"})

    assert response.status_code == 400


def test_delete_only_drafts(app, admin_client, make_campaign):
    draft_id = make_campaign()
    sent_id = make_campaign(status=SENT)

    assert admin_client.delete(f"{CAMPAIGNS}/{sent_id}").status_code == 400
    assert admin_client.delete(f"{CAMPAIGNS}/{draft_id}").status_code == 200

    with app.app_context():
        assert db.session.get(Campaign, draft_id) is None
        assert db.session.get(Campaign, sent_id) is not None


def test_bulk_delete_drafts(app, admin_client, make_campaign):
    first = make_campaign(title="Brouillon 1")
    second = make_campaign(title="Brouillon 2")
    kept = make_campaign(title="Brouillon 3")

    response = admin_client.delete(f"{CAMPAIGNS}/bulk-delete",
                                   json={"campaignIds": [first, second, first]})

    assert response.status_code == 200
    body = response.get_json()
    assert body["deletedCount"] == 2
    assert sorted(c["title"] for c in body["deletedCampaigns"]) == ["Brouillon 1", "Brouillon 2"]
    with app.app_context():
        assert db.session.get(Campaign, first) is None
        assert db.session.get(Campaign, second) is None
        assert db.session.get(Campaign, kept) is not None


def test_bulk_delete_is_all_or_nothing(app, admin_client, make_campaign):
    draft_id = make_campaign()
    sent_id = make_campaign(title="Lettre de mai", status=SENT)

    response = admin_client.delete(f"{CAMPAIGNS}/bulk-delete",
                                   json={"campaignIds": [draft_id, "unknown"]})
    assert response.status_code == 404
    assert response.get_json()["missingIds"] == ["unknown"]

    response = admin_client.delete(f"{CAMPAIGNS}/bulk-delete",
                                   json={"campaignIds": [draft_id, sent_id]})
    assert response.status_code == 400
    assert response.get_json()["undeletableCampaigns"] == [
        {"id": sent_id, "title": "Lettre de mai", "status": SENT},
    ]

    with app.app_context():
        assert db.session.get(Campaign, draft_id) is not None
        assert db.session.get(Campaign, sent_id) is not None


def test_bulk_delete_force_is_admin_only(app, client, admin_client, make_subscriber, make_campaign):
    subscriber_id = make_subscriber("anne@x.com")
    sent_id = make_campaign(status=SENT)
    with app.app_context():
        db.session.add(CampaignSent(campaign_id=sent_id, subscriber_id=subscriber_id,
                                    status=SEND_DELIVERED))
        db.session.commit()
    body = {"campaignIds": [sent_id], "force": True}

    login(client, role="moderator", user_id="mod-1")
    assert client.delete(f"{CAMPAIGNS}/bulk-delete", json=body).status_code == 400

    response = admin_client.delete(f"{CAMPAIGNS}/bulk-delete", json=body)
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Campaign, sent_id) is None
        assert db.session.query(CampaignSent).filter_by(campaign_id=sent_id).count() == 0


def test_bulk_delete_refused_to_editors(client, make_campaign):
    draft_id = make_campaign()
    login(client, role="editor", user_id="ed-1")

    response = client.delete(f"{CAMPAIGNS}/bulk-delete", json={"campaignIds": [draft_id]})
    assert response.status_code == 403


@pytest.mark.parametrize("body", [
    None,
    {},
    {"campaignIds": []},
    {"campaignIds": "abc"},
    {"campaignIds": [1, 2]},
    {"campaignIds": ["abc"], "force": "yes"},
])
def test_bulk_delete_validation(admin_client, body):
    response = admin_client.delete(f"{CAMPAIGNS}/bulk-delete", json=body)
    assert response.status_code == 400


def test_archive_only_sent(app, admin_client, make_campaign):
    draft_id = make_campaign()
    sent_id = make_campaign(status=SENT)

    assert admin_client.post(f"{CAMPAIGNS}/{draft_id}/archive").status_code == 400

    response = admin_client.post(f"{CAMPAIGNS}/{sent_id}/archive")
    assert response.status_code == 200
    assert response.get_json()["campaign"]["status"] == ARCHIVED


# ---------------------------------------------------------------------------
# Preview, content, test email
# ---------------------------------------------------------------------------

def test_preview_renders_content_without_pixel(app, admin_client):
    event_id, place_id, post_id = _add_content(app)
    body = dict(CAMPAIGN_BODY, includedEvents=[event_id], includedPlaces=[place_id],
                includedPosts=[post_id])
    campaign_id = admin_client.post(CAMPAIGNS, json=body).get_json()["campaign"]["id"]

    response = admin_client.get(f"{CAMPAIGNS}/{campaign_id}/preview")

    assert response.status_code == 200
    assert response.mimetype == "text/html"
    html = response.get_data(as_text=True)
    assert "Bonjour Prénom," in html
    assert "Fête de la musique" in html
    assert "21 juin 2026 à 18:00" in html
    assert "Boulangerie Martin" in html
    assert "Bilan de l&#x27;année" in html
    assert "Rendez-vous place de la Vierge." in html
    assert "/api/newsletter/track/open" not in html


def test_available_content(app, admin_client):
    _add_content(app)

    response = admin_client.get("/api/admin/newsletter/content/available")

    data = response.get_json()
    assert [e["slug"] for e in data["events"]] == ["fete-musique"]
    assert [p["slug"] for p in data["places"]] == ["boulangerie-martin"]
    assert [p["slug"] for p in data["posts"]] == ["bilan"]


def test_send_test_email(admin_client, make_campaign):
    campaign_id = make_campaign()

    with patch.object(email_service, "send_email", return_value="dev-1") as send:
        response = admin_client.post("/api/admin/newsletter/send-test-email", json={
            "email": "admin@abc-bedarieux.fr", "campaignId": campaign_id,
        })

    assert response.status_code == 200
    data = response.get_json()
    assert data["messageId"] == "dev-1"
    assert data["development"] is True
    to, subject = send.call_args[0][:2]
    assert to == "admin@abc-bedarieux.fr"
    assert subject == "[TEST] Newsletter de mars"


def test_send_test_email_transport_failure(admin_client):
    with patch.object(email_service, "send_email", side_effect=MailTransportError("refused")):
        response = admin_client.post("/api/admin/newsletter/send-test-email",
                                     json={"email": "admin@abc-bedarieux.fr"})

    assert response.status_code == 502
    assert "refused" in response.get_json()["error"]


def test_send_test_email_needs_valid_address(admin_client):
    response = admin_client.post("/api/admin/newsletter/send-test-email", json={"email": "nope"})
    assert response.status_code == 400
