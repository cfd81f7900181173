"""
Open and click tracking on the per-subscriber send records.

First open wins: opened_at is only written while it is empty, so mail
clients that prefetch the pixel again change nothing. After an update the
campaign totals are recounted from the send records. A FAILED record keeps
its status; only the timestamps are stamped.
"""

import logging
from urllib.parse import urlparse

from ...core.database import utcnow
from ..campaigns.models import SEND_OPENED, SEND_CLICKED, SEND_FAILED

logger = logging.getLogger(__name__)


class CampaignTracker:

    def __init__(self, campaigns, allowed_domains, base_url):
        self.campaigns = campaigns
        self.allowed_domains = set(allowed_domains)
        self.base_url = base_url.rstrip('/')

    def _refresh(self, campaign_id):
        campaign = self.campaigns.get(campaign_id)
        if campaign is not None:
            self.campaigns.refresh_totals(campaign)

    def record_open(self, campaign_id, subscriber_id):
        """Mark the send record opened. Returns True when this was the first open."""
        record = self.campaigns.get_send(campaign_id, subscriber_id)
        if record is None:
            logger.warning(f"Open for unknown send record: campaign={campaign_id} subscriber={subscriber_id}")
            return False
        if record.opened_at is not None:
            return False

        record.opened_at = utcnow()
        if record.status != SEND_FAILED:
            record.status = SEND_OPENED
        self.campaigns.save_send(record)
        self._refresh(campaign_id)
        logger.info(f"First open: campaign={campaign_id} subscriber={subscriber_id}")
        return True

    def record_click(self, campaign_id, subscriber_id):
        """Mark the send record clicked, and opened if the pixel never loaded"""
        record = self.campaigns.get_send(campaign_id, subscriber_id)
        if record is None:
            logger.warning(f"Click for unknown send record: campaign={campaign_id} subscriber={subscriber_id}")
            return False
        if record.clicked_at is not None:
            return False

        now = utcnow()
        record.clicked_at = now
        if record.status != SEND_FAILED:
            record.status = SEND_CLICKED
        if record.opened_at is None:
            record.opened_at = now
        self.campaigns.save_send(record)
        self._refresh(campaign_id)
        logger.info(f"First click: campaign={campaign_id} subscriber={subscriber_id}")
        return True

    def is_allowed(self, url):
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            return False
        return parsed.hostname in self.allowed_domains or parsed.netloc in self.allowed_domains

    def safe_redirect(self, url):
        """The target when its host is allowed, otherwise the site root"""
        if url and self.is_allowed(url):
            return url
        if url:
            logger.warning(f"Blocked redirect to non-allowed URL: {url}")
        return self.base_url + '/'
