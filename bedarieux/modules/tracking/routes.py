"""
Tracking Routes
===============

Public endpoints hit by mail clients and browsers. None of them ever shows
an error to the reader: the pixel always answers an image, the click
endpoint always redirects, the web-view answers a styled HTML page.
"""

import base64
import logging
from html import escape

from flask import request, redirect, current_app, Response

from ...core.database import db
from ..campaigns.renderer import TrackingLinks, render_newsletter, get_style, get_brand
from ..campaigns.repository import CampaignRepository
from ..content.repository import ContentRepository
from ..newsletter.repository import SubscriberRepository
from . import tracking_bp
from .tracker import CampaignTracker

logger = logging.getLogger(__name__)

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode('R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7')

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}


def get_tracker():
    config = current_app.config
    return CampaignTracker(
        CampaignRepository(db.session),
        allowed_domains=config.get('NEWSLETTER_REDIRECT_DOMAINS', []),
        base_url=config['BASE_URL'],
    )


def _tracking_params():
    return request.args.get('c', '').strip(), request.args.get('s', '').strip()


def _html_page(title, message, status_code):
    """Minimal styled page for web-view errors"""
    style = get_style()
    brand = get_brand()
    html = f'''<!DOCTYPE html>
<html lang="fr">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)} - {escape(brand['name'])}</title>
</head>
<body style="margin:0;padding:40px 20px;background-color:{style['bg']};font-family:{style['font']};color:{style['text']};">
    <div style="max-width:500px;margin:0 auto;background:{style['card_bg']};border-radius:12px;padding:30px;text-align:center;box-shadow:0 4px 6px rgba(0,0,0,0.1);">
        <h1 style="color:{style['heading']};font-size:22px;margin:0 0 15px 0;">{escape(title)}</h1>
        <p style="margin:0 0 25px 0;">{escape(message)}</p>
        <a href="{brand['url']}/" style="display:inline-block;background:{style['btn_bg']};color:{style['btn_text']};padding:10px 20px;border-radius:6px;text-decoration:none;">Retour au site</a>
    </div>
</body>
</html>'''
    return Response(html, status=status_code, mimetype='text/html')


@tracking_bp.route('/track/open', methods=['GET'])
@tracking_bp.route('/tracking/open', methods=['GET'])
def track_open():
    """Tracking pixel: marks the send record opened, always answers the GIF"""
    campaign_id, subscriber_id = _tracking_params()
    try:
        if campaign_id and subscriber_id:
            get_tracker().record_open(campaign_id, subscriber_id)
        else:
            logger.warning("Tracking pixel requested without campaign or subscriber id")
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error tracking email open: {e}")

    response = Response(TRACKING_PIXEL, mimetype='image/gif')
    response.headers.update(NO_CACHE_HEADERS)
    return response


@tracking_bp.route('/track/click', methods=['GET'])
def track_click():
    """Record the click, then redirect to the link if its host is allowed"""
    campaign_id, subscriber_id = _tracking_params()
    url = request.args.get('url', '').strip()
    tracker = get_tracker()

    if campaign_id and subscriber_id:
        try:
            tracker.record_click(campaign_id, subscriber_id)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error tracking email click: {e}")
    else:
        logger.warning("Click tracked without campaign or subscriber id")

    return redirect(tracker.safe_redirect(url), code=302)


@tracking_bp.route('/web-view', methods=['GET'])
def web_view():
    """Browser copy of a campaign. Loading it counts as an open."""
    campaign_id, subscriber_id = _tracking_params()
    if not campaign_id or not subscriber_id:
        return _html_page('Lien invalide', 'Ce lien de consultation est incomplet.', 400)

    try:
        campaigns = CampaignRepository(db.session)
        campaign = campaigns.get(campaign_id)
        subscriber = SubscriberRepository(db.session).get(subscriber_id)
        if campaign is None or subscriber is None:
            logger.warning(f"Web-view for unknown campaign or subscriber: c={campaign_id} s={subscriber_id}")
            return _html_page('Newsletter introuvable', "Cette newsletter n'existe pas ou n'est plus disponible.", 404)

        get_tracker().record_open(campaign_id, subscriber_id)

        links = TrackingLinks(current_app.config['BASE_URL'], campaign.id, subscriber.id,
                              subscriber.unsubscribe_token)
        content = ContentRepository(db.session).for_campaign(campaign)
        html = render_newsletter(campaign, subscriber, content, links,
                                 include_pixel=False, include_web_view_link=False)
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Error rendering web-view: {e}")
        return _html_page('Erreur', "Une erreur est survenue lors de l'affichage de la newsletter.", 500)

    response = Response(html, mimetype='text/html')
    response.headers.update(NO_CACHE_HEADERS)
    return response
