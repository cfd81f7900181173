import logging

from sqlalchemy import func

from ...core.database import utcnow
from ..newsletter.models import Subscriber
from .models import Campaign, CampaignSent, DELIVERED_STATUSES, SEND_FAILED

logger = logging.getLogger(__name__)


class CampaignRepository:
    """Campaign and send-record persistence on a SQLAlchemy session.

    Every write commits on its own: a batch interrupted halfway keeps the
    records written so far.
    """

    def __init__(self, session):
        self.session = session

    def get(self, campaign_id):
        if not campaign_id:
            return None
        return self.session.get(Campaign, campaign_id)

    def paginate(self, page=1, limit=10, status=None):
        """Returns (campaigns, total), most recent first"""
        query = self.session.query(Campaign)
        if status:
            query = query.filter(Campaign.status == status)
        total = query.count()
        campaigns = (query.order_by(Campaign.created_at.desc())
                     .offset((page - 1) * limit)
                     .limit(limit)
                     .all())
        return campaigns, total

    def save(self, campaign):
        self.session.add(campaign)
        self.session.commit()
        return campaign

    def delete(self, campaign):
        self.session.delete(campaign)
        self.session.commit()

    def get_many(self, campaign_ids):
        return self.session.query(Campaign).filter(Campaign.id.in_(campaign_ids)).all()

    def delete_many(self, campaigns):
        """Delete in one transaction: either every campaign goes or none does"""
        for campaign in campaigns:
            self.session.delete(campaign)
        self.session.commit()

    def set_status(self, campaign, status, **fields):
        campaign.status = status
        for name, value in fields.items():
            setattr(campaign, name, value)
        self.session.commit()
        return campaign

    # ==================== Send records ====================

    def get_send(self, campaign_id, subscriber_id):
        if not campaign_id or not subscriber_id:
            return None
        return self.session.get(CampaignSent, (campaign_id, subscriber_id))

    def upsert_send(self, campaign_id, subscriber_id, status, error_message=None):
        """Create or overwrite the send record for one (campaign, subscriber) pair"""
        record = self.get_send(campaign_id, subscriber_id)
        now = utcnow()
        if record is None:
            record = CampaignSent(campaign_id=campaign_id, subscriber_id=subscriber_id)
            self.session.add(record)
        record.status = status
        record.sent_at = now
        record.error_message = error_message

        if status in DELIVERED_STATUSES:
            subscriber = self.session.get(Subscriber, subscriber_id)
            if subscriber is not None:
                subscriber.last_email_sent = now

        self.session.commit()
        return record

    def save_send(self, record):
        self.session.add(record)
        self.session.commit()
        return record

    def failed_sends(self, campaign_id):
        return (self.session.query(CampaignSent)
                .filter(CampaignSent.campaign_id == campaign_id,
                        CampaignSent.status == SEND_FAILED)
                .all())

    # ==================== Aggregates ====================

    def count_sends(self, campaign_id):
        """Fresh counts from the send records"""
        base = self.session.query(func.count()).select_from(CampaignSent).filter(
            CampaignSent.campaign_id == campaign_id
        )
        return {
            'sent': base.scalar(),
            'delivered': base.filter(CampaignSent.status.in_(DELIVERED_STATUSES)).scalar(),
            'opened': base.filter(CampaignSent.opened_at.isnot(None)).scalar(),
            'clicked': base.filter(CampaignSent.clicked_at.isnot(None)).scalar(),
            'failed': base.filter(CampaignSent.status == SEND_FAILED).scalar(),
            'unsubscribed': (base.join(Subscriber, Subscriber.id == CampaignSent.subscriber_id)
                             .filter(Subscriber.is_active.is_(False))
                             .scalar()),
        }

    def refresh_totals(self, campaign):
        """Recompute the cached total_* columns from the send records"""
        counts = self.count_sends(campaign.id)
        campaign.total_sent = counts['sent']
        campaign.total_delivered = counts['delivered']
        campaign.total_opened = counts['opened']
        campaign.total_clicked = counts['clicked']
        campaign.total_unsubscribed = counts['unsubscribed']
        self.session.commit()
        return counts

    def campaign_ids_for_subscriber(self, subscriber_id):
        rows = (self.session.query(CampaignSent.campaign_id)
                .filter(CampaignSent.subscriber_id == subscriber_id)
                .distinct()
                .all())
        return [campaign_id for campaign_id, in rows]

    def refresh_campaigns(self, campaign_ids):
        """Recount every listed campaign, skipping ids deleted in the meantime"""
        for campaign_id in campaign_ids:
            campaign = self.get(campaign_id)
            if campaign is not None:
                self.refresh_totals(campaign)
