"""
Campaign Sender
===============

Sends a campaign to its recipients one after the other inside the calling
request. A failure for one subscriber is recorded on its send record and
the batch moves on; there is no automatic retry (resend_failed() is the
manual path).

Collaborators are passed in so the sender runs against fakes in tests:
    campaigns    CampaignRepository
    subscribers  SubscriberRepository
    content      ContentRepository
    mailer       object with send_email(to, subject, html_body, text_body=None, email_type=None)
"""

import time
import logging
from dataclasses import dataclass, field
from typing import List

from ...core.database import utcnow
from ...core.errors import NotFound, InvalidCampaignState, NoRecipients
from ...core.logging_service import db_log
from .models import SENDABLE_STATUSES, SENDING, SENT, SEND_DELIVERED, SEND_FAILED
from .renderer import TrackingLinks, render_newsletter

logger = logging.getLogger(__name__)


@dataclass
class SendSummary:
    attempted: int = 0
    sent: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)

    def to_dict(self, error_limit):
        return {
            'attempted': self.attempted,
            'sent': self.sent,
            'errors': self.errors,
            'errorMessages': self.error_messages[:error_limit],
        }


class CampaignSender:

    def __init__(self, campaigns, subscribers, content, mailer, base_url,
                 delay=0.0, error_limit=5, sleep=time.sleep):
        self.campaigns = campaigns
        self.subscribers = subscribers
        self.content = content
        self.mailer = mailer
        self.base_url = base_url
        self.delay = delay
        self.error_limit = error_limit
        self.sleep = sleep

    def _get_campaign(self, campaign_id):
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            raise NotFound('Campaign not found')
        return campaign

    def _deliver(self, campaign, subscriber, content, summary):
        """Render and send one copy, then write its send record"""
        summary.attempted += 1
        try:
            links = TrackingLinks(self.base_url, campaign.id, subscriber.id, subscriber.unsubscribe_token)
            html_body = render_newsletter(campaign, subscriber, content, links)
            self.mailer.send_email(subscriber.email, campaign.subject, html_body, email_type='newsletter')
        except Exception as e:
            summary.errors += 1
            summary.error_messages.append(f"{subscriber.email}: {e}")
            logger.error(f"Campaign {campaign.id}: send to {subscriber.email} failed: {e}")
            self.campaigns.upsert_send(campaign.id, subscriber.id, SEND_FAILED, error_message=str(e) or type(e).__name__)
            return False

        summary.sent += 1
        self.campaigns.upsert_send(campaign.id, subscriber.id, SEND_DELIVERED)
        return True

    def _run(self, campaign, recipients, content, summary):
        for index, subscriber in enumerate(recipients):
            self._deliver(campaign, subscriber, content, summary)
            if self.delay and index < len(recipients) - 1:
                self.sleep(self.delay)

    def send(self, campaign_id, principal=None):
        """Send a DRAFT or SCHEDULED campaign to every eligible subscriber.

        Returns the batch summary dict.
        """
        campaign = self._get_campaign(campaign_id)
        if campaign.status not in SENDABLE_STATUSES:
            raise InvalidCampaignState(f'Campaign cannot be sent (status: {campaign.status})')

        recipients = self.subscribers.recipients(campaign.preference_flag)
        if not recipients:
            raise NoRecipients()

        content = self.content.for_campaign(campaign)
        self.campaigns.set_status(campaign, SENDING, total_recipients=len(recipients))

        user_id = principal.user_id if principal else None
        logger.info(f"Campaign {campaign.id}: sending to {len(recipients)} subscribers")
        db_log('info', 'campaigns', f'Campaign send started: {campaign.title}', {
            'campaign_id': campaign.id, 'recipients': len(recipients), 'started_by': user_id,
        })

        summary = SendSummary()
        try:
            self._run(campaign, recipients, content, summary)
        except Exception as e:
            logger.critical(f"Campaign {campaign.id} left in SENDING after {summary.attempted} attempts: {e}")
            db_log('critical', 'campaigns', f'Campaign left in SENDING: {campaign.title}', {
                'campaign_id': campaign.id, 'attempted': summary.attempted, 'error': str(e),
            })
            raise

        self.campaigns.set_status(campaign, SENT, sent_at=utcnow())
        self.campaigns.refresh_totals(campaign)

        level = 'warning' if summary.errors else 'info'
        db_log(level, 'campaigns', f'Campaign sent: {campaign.title}', {
            'campaign_id': campaign.id,
            'sent': summary.sent,
            'errors': summary.errors,
            'error_messages': summary.error_messages[:self.error_limit],
        })
        return summary.to_dict(self.error_limit)

    def resend_failed(self, campaign_id, principal=None):
        """Retry the FAILED send records of a SENT campaign.

        Subscribers who unsubscribed since are skipped and keep their FAILED record.
        """
        campaign = self._get_campaign(campaign_id)
        if campaign.status != SENT:
            raise InvalidCampaignState('Only sent campaigns can retry failed sends')

        failed = self.campaigns.failed_sends(campaign.id)
        recipients = [
            record.subscriber for record in failed
            if record.subscriber is not None and record.subscriber.is_active and record.subscriber.is_verified
        ]

        summary = SendSummary()
        if recipients:
            content = self.content.for_campaign(campaign)
            self._run(campaign, recipients, content, summary)
            self.campaigns.refresh_totals(campaign)

        db_log('info', 'campaigns', f'Failed sends retried: {campaign.title}', {
            'campaign_id': campaign.id,
            'failed_records': len(failed),
            'sent': summary.sent,
            'errors': summary.errors,
            'retried_by': principal.user_id if principal else None,
        })
        return summary.to_dict(self.error_limit)
