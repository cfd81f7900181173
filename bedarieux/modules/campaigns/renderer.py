"""
Campaign Renderer
=================

Builds the newsletter HTML for one subscriber: greeting, campaign text,
selected events/places/posts, attachment links, and the footer with the
unsubscribe link and the tracking pixel. All CSS is inline.
Uses the EMAIL_STYLE config for theming, like the email service templates.
"""

import logging
from datetime import datetime
from html import escape
from urllib.parse import urlencode

from flask import current_app

logger = logging.getLogger(__name__)

# Default email style (matches email_service defaults)
DEFAULT_STYLE = {
    'bg': '#f5f5f5',
    'card_bg': '#ffffff',
    'header_bg': 'linear-gradient(135deg, #10b981, #059669)',
    'header_text': '#ffffff',
    'text': '#333333',
    'heading': '#1f2937',
    'text_secondary': '#6b7280',
    'accent': '#10b981',
    'card_border': '#e5e7eb',
    'link': '#3b82f6',
    'btn_bg': '#3b82f6',
    'btn_text': '#ffffff',
    'footer_bg': '#f3f4f6',
    'font': "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif",
}

MONTHS_FR = ['janvier', 'février', 'mars', 'avril', 'mai', 'juin', 'juillet',
             'août', 'septembre', 'octobre', 'novembre', 'décembre']

PREVIEW_ID = 'preview'


def get_style():
    """Get email style from app config or defaults"""
    try:
        custom = current_app.config.get('EMAIL_STYLE', {})
        style = dict(DEFAULT_STYLE)
        style.update(custom)
        return style
    except RuntimeError:
        return dict(DEFAULT_STYLE)


def get_brand():
    """Get brand info from app config"""
    try:
        return {
            'name': current_app.config.get('EMAIL_BRAND_NAME', 'ABC Bédarieux'),
            'tagline': current_app.config.get('EMAIL_BRAND_TAGLINE', ''),
            'url': current_app.config.get('BASE_URL', 'https://abc-bedarieux.fr').rstrip('/'),
        }
    except RuntimeError:
        return {'name': 'ABC Bédarieux', 'tagline': '', 'url': 'https://abc-bedarieux.fr'}


class TrackingLinks:
    """Absolute URLs embedded in one subscriber's copy of a campaign"""

    def __init__(self, base_url, campaign_id, subscriber_id, unsubscribe_token=None):
        self.base_url = base_url.rstrip('/')
        self.campaign_id = campaign_id
        self.subscriber_id = subscriber_id
        self.unsubscribe_token = unsubscribe_token

    def _api(self, path, **params):
        return f"{self.base_url}/api/newsletter/{path}?{urlencode(params)}"

    @property
    def pixel(self):
        return self._api('track/open', c=self.campaign_id, s=self.subscriber_id)

    @property
    def web_view(self):
        return self._api('web-view', c=self.campaign_id, s=self.subscriber_id)

    @property
    def unsubscribe(self):
        if not self.unsubscribe_token:
            return f"{self.base_url}/newsletter/unsubscribe"
        return f"{self.base_url}/newsletter/unsubscribe?{urlencode({'token': self.unsubscribe_token})}"

    def click(self, url):
        return self._api('track/click', c=self.campaign_id, s=self.subscriber_id, url=url)

    def absolute(self, path):
        if path.startswith(('http://', 'https://')):
            return path
        return self.base_url + path


def resolve_variables(subscriber):
    """Personalization tokens available in the campaign text.

    {{FIRST_NAME}}, {{LAST_NAME}} and {{EMAIL}}
    """
    return {
        'FIRST_NAME': subscriber.first_name or '',
        'LAST_NAME': subscriber.last_name or '',
        'EMAIL': subscriber.email,
    }


def _substitute_variables(text, variables):
    """Replace {{VAR}} placeholders with actual values"""
    if not text:
        return text
    for key, value in variables.items():
        text = text.replace(f'{{{{{key}}}}}', str(value))
    return text


def _format_text(text, variables):
    """Plain campaign text to HTML: escaped, newlines become <br>"""
    text = escape(_substitute_variables(text or '', variables))
    return text.replace('\r\n', '\n').replace('\n', '<br>')


def format_date_fr(value, with_time=True):
    if not isinstance(value, datetime):
        return ''
    text = f"{value.day} {MONTHS_FR[value.month - 1]} {value.year}"
    if with_time:
        text += f" à {value.strftime('%H:%M')}"
    return text


def _card(style, title, url, lines, image=None):
    image_html = ''
    if image:
        image_html = f'<img src="{escape(image)}" alt="" style="width:100%;max-height:180px;object-fit:cover;border-radius:6px;margin-bottom:10px;" />'
    lines_html = ''.join(
        f'<p style="margin:4px 0;font-size:14px;color:{style["text_secondary"]};">{escape(line)}</p>'
        for line in lines if line
    )
    return f'''<div style="border:1px solid {style['card_border']};border-radius:8px;padding:16px;margin:0 0 14px 0;">
                {image_html}
                <a href="{url}" style="font-size:16px;font-weight:600;color:{style['heading']};text-decoration:none;">{escape(title)}</a>
                {lines_html}
            </div>'''


def _section(style, heading, cards):
    if not cards:
        return ''
    return f'''<div style="margin-top:28px;">
            <h3 style="font-size:18px;color:{style['accent']};border-bottom:2px solid {style['accent']};padding-bottom:6px;margin:0 0 14px 0;">{heading}</h3>
            {''.join(cards)}
        </div>'''


def render_content_blocks(content, links, style):
    """Events, places and posts as linked cards. Links go through click tracking."""
    events = [
        _card(style, event.title, links.click(links.absolute(event.path)), [
            format_date_fr(event.start_date, with_time=not event.is_all_day),
            ', '.join(part for part in (event.location_name, event.location_city) if part),
            event.summary,
        ], event.cover_image)
        for event in content.get('events', [])
    ]
    places = [
        _card(style, place.name, links.click(links.absolute(place.path)), [
            ', '.join(part for part in (place.street, place.city) if part),
            place.summary,
        ], place.cover_image or place.logo)
        for place in content.get('places', [])
    ]
    posts = [
        _card(style, post.title, links.click(links.absolute(post.path)), [
            format_date_fr(post.published_at, with_time=False),
            post.excerpt,
        ], post.cover_image)
        for post in content.get('posts', [])
    ]
    return (
        _section(style, 'Événements à venir', events)
        + _section(style, 'Commerces à découvrir', places)
        + _section(style, 'Actualités', posts)
    )


def _format_size(size):
    size = size or 0
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} Mo"
    return f"{max(size // 1024, 1)} Ko"


def render_attachments(attachments, links, style):
    if not attachments:
        return ''
    items = ''.join(
        f'<li style="margin:4px 0;"><a href="{links.click(links.absolute(attachment.file_path))}" '
        f'style="color:{style["link"]};">{escape(attachment.original_name)}</a> '
        f'<span style="color:{style["text_secondary"]};font-size:12px;">({_format_size(attachment.file_size)})</span></li>'
        for attachment in attachments
    )
    return f'''<div style="margin-top:24px;padding:14px 16px;background:{style['footer_bg']};border-radius:6px;">
            <p style="margin:0 0 6px 0;font-weight:600;">Pièces jointes</p>
            <ul style="margin:0;padding-left:18px;">{items}</ul>
        </div>'''


def render_newsletter(campaign, subscriber, content, links, include_pixel=True, include_web_view_link=True):
    """Render a full campaign into a complete HTML email for one subscriber.

    Args:
        campaign: Campaign being sent
        subscriber: recipient (anything with first_name, last_name, email)
        content: dict of events/places/posts from ContentRepository.for_campaign()
        links: TrackingLinks for this (campaign, subscriber) pair
        include_pixel: embed the open-tracking pixel
        include_web_view_link: add the "view in browser" link

    Returns:
        Complete HTML email string with all inline CSS
    """
    style = get_style()
    brand = get_brand()
    variables = resolve_variables(subscriber)

    greeting = ''
    if subscriber.first_name:
        greeting = f'<p style="font-size:18px;margin:0 0 20px 0;color:{style["heading"]};">Bonjour {escape(subscriber.first_name)},</p>'

    web_view_html = ''
    if include_web_view_link:
        web_view_html = f'''<p style="text-align:center;font-size:12px;color:{style['text_secondary']};margin:0 0 12px 0;">
            Vous ne voyez pas bien cet email ? <a href="{links.web_view}" style="color:{style['link']};">Voir dans le navigateur</a>
        </p>'''

    pixel_html = ''
    if include_pixel:
        pixel_html = f'<img src="{links.pixel}" width="1" height="1" style="display:none;" alt="">'

    tagline_html = ''
    if brand['tagline']:
        tagline_html = f'<p style="margin:5px 0 0 0;opacity:0.9;">{escape(brand["tagline"])}</p>'

    html = f'''<!DOCTYPE html>
<html lang="fr">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(campaign.subject)}</title>
</head>
<body style="margin:0;padding:20px;background-color:{style['bg']};font-family:{style['font']};line-height:1.6;color:{style['text']};">
    <div style="max-width:600px;margin:0 auto;">
        {web_view_html}
        <div style="background:{style['card_bg']};border-radius:12px;overflow:hidden;box-shadow:0 4px 6px rgba(0,0,0,0.1);">
            <div style="background:{style['header_bg']};color:{style['header_text']};padding:30px 20px;text-align:center;">
                <h1 style="margin:0;font-size:26px;">{escape(brand['name'])}</h1>
                {tagline_html}
            </div>

            <div style="padding:30px 24px;">
                {greeting}
                <h2 style="color:{style['heading']};margin:0 0 15px 0;">{escape(campaign.title)}</h2>
                <div style="font-size:16px;">{_format_text(campaign.content, variables)}</div>
                {render_content_blocks(content, links, style)}
                {render_attachments(campaign.attachments, links, style)}
                <p style="margin-top:25px;color:{style['text_secondary']};font-size:14px;">
                    Merci de votre fidélité à l'association {escape(brand['name'])} !
                </p>
            </div>

            <div style="background:{style['footer_bg']};padding:20px;text-align:center;font-size:12px;color:{style['text_secondary']};">
                <p style="margin:0 0 10px 0;font-weight:600;">{escape(brand['tagline'] or brand['name'])}</p>
                <p style="margin:10px 0;">Bédarieux, France<br>Cette newsletter vous est envoyée car vous êtes abonné à nos actualités.</p>
                <a href="{links.unsubscribe}" style="color:{style['text_secondary']};">Se désabonner de cette newsletter</a>
                {pixel_html}
            </div>
        </div>
    </div>
</body>
</html>'''

    return html


def render_preview(campaign, content, base_url):
    """Admin preview: sample recipient, no tracking pixel"""

    class _SampleRecipient:
        first_name = 'Prénom'
        last_name = 'Nom'
        email = 'abonne@example.com'

    links = TrackingLinks(base_url, campaign.id or PREVIEW_ID, PREVIEW_ID)
    return render_newsletter(campaign, _SampleRecipient(), content, links, include_pixel=False)

