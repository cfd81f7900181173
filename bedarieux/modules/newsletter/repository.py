from sqlalchemy import or_

from .models import Subscriber, SubscriberPreferences, PREFERENCE_FLAGS, normalize_email


class SubscriberRepository:
    """Subscriber queries on a SQLAlchemy session"""

    def __init__(self, session):
        self.session = session

    def get(self, subscriber_id):
        if not subscriber_id:
            return None
        return self.session.get(Subscriber, subscriber_id)

    def by_email(self, email):
        email = normalize_email(email)
        if not email:
            return None
        return self.session.query(Subscriber).filter(Subscriber.email == email).first()

    def by_verification_token(self, token):
        if not token:
            return None
        return (self.session.query(Subscriber)
                .filter(Subscriber.verification_token == token)
                .first())

    def by_unsubscribe_token(self, token, active_only=False):
        if not token:
            return None
        query = self.session.query(Subscriber).filter(Subscriber.unsubscribe_token == token)
        if active_only:
            query = query.filter(Subscriber.is_active.is_(True))
        return query.first()

    def add(self, subscriber):
        self.session.add(subscriber)
        self.session.commit()
        return subscriber

    def save(self, subscriber):
        self.session.add(subscriber)
        self.session.commit()
        return subscriber

    def delete(self, subscriber):
        self.session.delete(subscriber)
        self.session.commit()

    def _recipients_query(self, preference_flag=None):
        query = (self.session.query(Subscriber)
                 .outerjoin(SubscriberPreferences)
                 .filter(Subscriber.is_active.is_(True))
                 .filter(Subscriber.is_verified.is_(True)))
        if preference_flag in PREFERENCE_FLAGS:
            # No preferences row means every kind of content
            column = getattr(SubscriberPreferences, preference_flag)
            query = query.filter(or_(SubscriberPreferences.id.is_(None), column.is_(True)))
        return query

    def recipients(self, preference_flag=None):
        """Active, verified subscribers who accept this kind of content"""
        return self._recipients_query(preference_flag).order_by(Subscriber.subscribed_at.asc()).all()

    def count_recipients(self, preference_flag=None):
        return self._recipients_query(preference_flag).count()

    def search(self, search=None, status=None, verified=None, page=1, limit=20):
        """Admin listing. Returns (subscribers, total)"""
        query = self.session.query(Subscriber)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                Subscriber.email.ilike(pattern),
                Subscriber.first_name.ilike(pattern),
                Subscriber.last_name.ilike(pattern),
            ))
        if status == 'active':
            query = query.filter(Subscriber.is_active.is_(True))
        elif status == 'inactive':
            query = query.filter(Subscriber.is_active.is_(False))
        if verified is not None:
            query = query.filter(Subscriber.is_verified.is_(verified))

        total = query.count()
        subscribers = (query.order_by(Subscriber.subscribed_at.desc())
                       .offset((page - 1) * limit)
                       .limit(limit)
                       .all())
        return subscribers, total

    def counts(self):
        total = self.session.query(Subscriber).count()
        active = self.session.query(Subscriber).filter(Subscriber.is_active.is_(True)).count()
        verified = (self.session.query(Subscriber)
                    .filter(Subscriber.is_active.is_(True), Subscriber.is_verified.is_(True))
                    .count())
        return {'total': total, 'active': active, 'verified': verified}

    def active(self):
        return (self.session.query(Subscriber)
                .filter(Subscriber.is_active.is_(True))
                .order_by(Subscriber.subscribed_at.asc())
                .all())

    def all(self):
        return self.session.query(Subscriber).order_by(Subscriber.subscribed_at.desc()).all()
