"""
Newsletter Subscriber Models
============================

Subscribers and their content preferences. Email addresses are stored
lower-cased and stripped; the unique index enforces one row per address.
"""

from ...core.database import db, new_id, utcnow, isoformat

FREQUENCIES = ('DAILY', 'WEEKLY', 'MONTHLY')
DEFAULT_FREQUENCY = 'WEEKLY'
PREFERENCE_FLAGS = ('events', 'places', 'offers', 'news')


def normalize_email(email):
    return (email or '').strip().lower()


class Subscriber(db.Model):
    __tablename__ = 'newsletter_subscribers'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(320), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    verification_token = db.Column(db.String(64), unique=True)
    unsubscribe_token = db.Column(db.String(64), unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    source = db.Column(db.String(50), default='website')
    subscribed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    verified_at = db.Column(db.DateTime)
    last_email_sent = db.Column(db.DateTime)

    preferences = db.relationship(
        'SubscriberPreferences',
        back_populates='subscriber',
        uselist=False,
        cascade='all, delete-orphan',
    )
    sends = db.relationship(
        'CampaignSent',
        back_populates='subscriber',
        cascade='all, delete-orphan',
    )

    def to_dict(self, include_preferences=True):
        data = {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'isActive': self.is_active,
            'isVerified': self.is_verified,
            'source': self.source,
            'subscribedAt': isoformat(self.subscribed_at),
            'verifiedAt': isoformat(self.verified_at),
            'lastEmailSent': isoformat(self.last_email_sent),
        }
        if include_preferences:
            data['preferences'] = self.preferences.to_dict() if self.preferences else None
        return data


class SubscriberPreferences(db.Model):
    __tablename__ = 'newsletter_preferences'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    subscriber_id = db.Column(
        db.String(36),
        db.ForeignKey('newsletter_subscribers.id', ondelete='CASCADE'),
        unique=True,
        nullable=False,
    )
    events = db.Column(db.Boolean, nullable=False, default=True)
    places = db.Column(db.Boolean, nullable=False, default=True)
    offers = db.Column(db.Boolean, nullable=False, default=True)
    news = db.Column(db.Boolean, nullable=False, default=True)
    frequency = db.Column(db.String(10), nullable=False, default=DEFAULT_FREQUENCY)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    subscriber = db.relationship('Subscriber', back_populates='preferences')

    def apply(self, values):
        """Copy flags and frequency from a validated preferences dict"""
        for flag in PREFERENCE_FLAGS:
            if flag in values:
                setattr(self, flag, bool(values[flag]))
        if values.get('frequency'):
            self.frequency = values['frequency']

    def to_dict(self):
        return {
            'events': self.events,
            'places': self.places,
            'offers': self.offers,
            'news': self.news,
            'frequency': self.frequency,
        }
