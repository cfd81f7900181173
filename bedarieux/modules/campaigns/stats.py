"""
Campaign statistics, read straight from the send records.

Nothing here writes: the stored total_* columns are returned next to the
fresh counts so a drift between the two is visible.
"""

from datetime import timedelta

from sqlalchemy import func

from ...core.database import utcnow, isoformat
from ..newsletter.models import Subscriber
from .models import CampaignSent, SEND_FAILED


def rate(numerator, denominator):
    """Integer percentage rounded half up, 0 when there is nothing to divide by"""
    if not denominator:
        return 0
    return (numerator * 200 + denominator) // (denominator * 2)


class CampaignStats:

    def __init__(self, session, campaigns, error_limit=10, activity_limit=20):
        self.session = session
        self.campaigns = campaigns
        self.error_limit = error_limit
        self.activity_limit = activity_limit

    def recent_errors(self, campaign_id):
        rows = (self.session.query(CampaignSent, Subscriber.email)
                .join(Subscriber, Subscriber.id == CampaignSent.subscriber_id)
                .filter(CampaignSent.campaign_id == campaign_id,
                        CampaignSent.status == SEND_FAILED,
                        CampaignSent.error_message.isnot(None))
                .order_by(CampaignSent.sent_at.desc())
                .limit(self.error_limit)
                .all())
        return [
            {'email': email, 'errorMessage': record.error_message, 'sentAt': isoformat(record.sent_at)}
            for record, email in rows
        ]

    def recent_activity(self, campaign_id):
        last_event = func.coalesce(CampaignSent.clicked_at, CampaignSent.opened_at)
        rows = (self.session.query(CampaignSent, Subscriber)
                .join(Subscriber, Subscriber.id == CampaignSent.subscriber_id)
                .filter(CampaignSent.campaign_id == campaign_id,
                        last_event.isnot(None))
                .order_by(last_event.desc())
                .limit(self.activity_limit)
                .all())
        return [
            {
                'email': subscriber.email,
                'name': subscriber.first_name or subscriber.email,
                'action': 'clicked' if record.clicked_at else 'opened',
                'timestamp': isoformat(record.clicked_at or record.opened_at),
            }
            for record, subscriber in rows
        ]

    def timeline(self, campaign_id, hours=24):
        """Send records per status over the last hours"""
        since = utcnow() - timedelta(hours=hours)
        rows = (self.session.query(CampaignSent.status, func.count())
                .filter(CampaignSent.campaign_id == campaign_id,
                        CampaignSent.sent_at >= since)
                .group_by(CampaignSent.status)
                .all())
        return [{'status': status, 'count': count} for status, count in rows]

    def for_campaign(self, campaign):
        counts = self.campaigns.count_sends(campaign.id)
        return {
            'campaign': {
                'id': campaign.id,
                'title': campaign.title,
                'status': campaign.status,
                'sentAt': isoformat(campaign.sent_at),
            },
            'stats': {
                'sent': counts['sent'],
                'delivered': counts['delivered'],
                'opened': counts['opened'],
                'clicked': counts['clicked'],
                'failed': counts['failed'],
                'unsubscribed': counts['unsubscribed'],
                'rates': {
                    'delivery': rate(counts['delivered'], counts['sent']),
                    'open': rate(counts['opened'], counts['delivered']),
                    'click': rate(counts['clicked'], counts['opened']),
                    'failure': rate(counts['failed'], counts['sent']),
                },
                'stored': {
                    'recipients': campaign.total_recipients,
                    'sent': campaign.total_sent,
                    'delivered': campaign.total_delivered,
                    'opened': campaign.total_opened,
                    'clicked': campaign.total_clicked,
                    'unsubscribed': campaign.total_unsubscribed,
                },
            },
            'timeline': self.timeline(campaign.id),
            'errors': self.recent_errors(campaign.id),
            'recentActivity': self.recent_activity(campaign.id),
        }
