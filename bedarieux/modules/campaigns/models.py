"""
Campaigns Models
================

Campaigns, their attachments and the per-subscriber send records.

The total_* columns on a campaign are a cache. They are only ever written
by CampaignRepository.refresh_totals(), which recounts the send records.
"""

from ...core.database import db, new_id, utcnow, isoformat

# Campaign types
NEWSLETTER = 'NEWSLETTER'
ANNOUNCEMENT = 'ANNOUNCEMENT'
EVENT_DIGEST = 'EVENT_DIGEST'
PLACE_UPDATE = 'PLACE_UPDATE'
PROMOTIONAL = 'PROMOTIONAL'
CAMPAIGN_TYPES = (NEWSLETTER, ANNOUNCEMENT, EVENT_DIGEST, PLACE_UPDATE, PROMOTIONAL)

# Subscriber preference flag that must be set to receive each type
PREFERENCE_BY_TYPE = {
    EVENT_DIGEST: 'events',
    PLACE_UPDATE: 'places',
    PROMOTIONAL: 'offers',
    NEWSLETTER: 'news',
    ANNOUNCEMENT: 'news',
}

# Campaign statuses
DRAFT = 'DRAFT'
SCHEDULED = 'SCHEDULED'
SENDING = 'SENDING'
SENT = 'SENT'
ARCHIVED = 'ARCHIVED'
CAMPAIGN_STATUSES = (DRAFT, SCHEDULED, SENDING, SENT, ARCHIVED)
SENDABLE_STATUSES = (DRAFT, SCHEDULED)
EDITABLE_STATUSES = (DRAFT, SCHEDULED)

# Send record statuses
SEND_PENDING = 'PENDING'
SEND_DELIVERED = 'DELIVERED'
SEND_OPENED = 'OPENED'
SEND_CLICKED = 'CLICKED'
SEND_FAILED = 'FAILED'
DELIVERED_STATUSES = (SEND_DELIVERED, SEND_OPENED, SEND_CLICKED)


class Campaign(db.Model):
    __tablename__ = 'newsletter_campaigns'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False, default='')
    type = db.Column(db.String(20), nullable=False, default=NEWSLETTER)
    status = db.Column(db.String(20), nullable=False, default=DRAFT, index=True)
    scheduled_at = db.Column(db.DateTime)
    sent_at = db.Column(db.DateTime)

    included_events = db.Column(db.JSON, nullable=False, default=list)
    included_places = db.Column(db.JSON, nullable=False, default=list)
    included_posts = db.Column(db.JSON, nullable=False, default=list)

    total_recipients = db.Column(db.Integer, nullable=False, default=0)
    total_sent = db.Column(db.Integer, nullable=False, default=0)
    total_delivered = db.Column(db.Integer, nullable=False, default=0)
    total_opened = db.Column(db.Integer, nullable=False, default=0)
    total_clicked = db.Column(db.Integer, nullable=False, default=0)
    total_unsubscribed = db.Column(db.Integer, nullable=False, default=0)

    created_by_id = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    attachments = db.relationship(
        'CampaignAttachment',
        back_populates='campaign',
        cascade='all, delete-orphan',
        order_by='CampaignAttachment.created_at',
    )
    sends = db.relationship(
        'CampaignSent',
        back_populates='campaign',
        cascade='all, delete-orphan',
    )

    @property
    def preference_flag(self):
        return PREFERENCE_BY_TYPE.get(self.type, 'news')

    @property
    def is_editable(self):
        return self.status in EDITABLE_STATUSES

    def totals(self):
        return {
            'totalRecipients': self.total_recipients,
            'totalSent': self.total_sent,
            'totalDelivered': self.total_delivered,
            'totalOpened': self.total_opened,
            'totalClicked': self.total_clicked,
            'totalUnsubscribed': self.total_unsubscribed,
        }

    def to_dict(self, include_attachments=True):
        data = {
            'id': self.id,
            'title': self.title,
            'subject': self.subject,
            'content': self.content,
            'type': self.type,
            'status': self.status,
            'scheduledAt': isoformat(self.scheduled_at),
            'sentAt': isoformat(self.sent_at),
            'includedEvents': self.included_events or [],
            'includedPlaces': self.included_places or [],
            'includedPosts': self.included_posts or [],
            'createdById': self.created_by_id,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        data.update(self.totals())
        if include_attachments:
            data['attachments'] = [attachment.to_dict() for attachment in self.attachments]
        return data


class CampaignAttachment(db.Model):
    __tablename__ = 'newsletter_attachments'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    campaign_id = db.Column(
        db.String(36),
        db.ForeignKey('newsletter_campaigns.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100))
    file_size = db.Column(db.Integer, default=0)
    file_path = db.Column(db.String(500), nullable=False)
    uploaded_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    campaign = db.relationship('Campaign', back_populates='attachments')

    def to_dict(self):
        return {
            'id': self.id,
            'fileName': self.file_name,
            'originalName': self.original_name,
            'fileType': self.file_type,
            'fileSize': self.file_size,
            'filePath': self.file_path,
            'uploadedBy': self.uploaded_by,
            'createdAt': isoformat(self.created_at),
        }


class CampaignSent(db.Model):
    """Delivery and tracking record for one (campaign, subscriber) pair"""
    __tablename__ = 'newsletter_campaign_sent'

    campaign_id = db.Column(
        db.String(36),
        db.ForeignKey('newsletter_campaigns.id', ondelete='CASCADE'),
        primary_key=True,
    )
    subscriber_id = db.Column(
        db.String(36),
        db.ForeignKey('newsletter_subscribers.id', ondelete='CASCADE'),
        primary_key=True,
    )
    status = db.Column(db.String(20), nullable=False, default=SEND_PENDING, index=True)
    sent_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    opened_at = db.Column(db.DateTime)
    clicked_at = db.Column(db.DateTime)
    error_message = db.Column(db.Text)

    campaign = db.relationship('Campaign', back_populates='sends')
    subscriber = db.relationship('Subscriber', back_populates='sends')

    def to_dict(self):
        return {
            'campaignId': self.campaign_id,
            'subscriberId': self.subscriber_id,
            'status': self.status,
            'sentAt': isoformat(self.sent_at),
            'openedAt': isoformat(self.opened_at),
            'clickedAt': isoformat(self.clicked_at),
            'errorMessage': self.error_message,
        }
