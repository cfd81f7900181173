"""
Subscriber Lifecycle
====================

subscribe -> verify -> unsubscribe, plus the three GDPR actions (export,
delete, anonymize), preference changes, the signed-in account flow and the
admin add, update and delete. Unsubscribing keeps the row so a
later subscribe reactivates the same subscriber.
"""

import logging
import secrets
from urllib.parse import urlencode

from ...core.database import utcnow, isoformat
from ...core.errors import AlreadySubscribed, NotFound, ValidationError, MailTransportError
from ...core.logging_service import db_log
from .models import Subscriber, SubscriberPreferences

logger = logging.getLogger(__name__)

ANONYMIZED_DOMAIN = 'deleted.local'

GDPR_INFO = {
    'dataController': 'Association Bédaricienne des Commerçants (ABC)',
    'purpose': 'Envoi de newsletters et communication commerciale',
    'legalBasis': 'Consentement (Art. 6(1)(a) RGPD)',
    'retention': (
        "Les données sont conservées tant que l'abonnement est actif. Après désinscription, "
        "les données sont conservées 3 ans puis supprimées automatiquement."
    ),
    'rights': [
        "Droit d'accès à vos données",
        'Droit de rectification',
        "Droit à l'effacement (droit à l'oubli)",
        'Droit à la portabilité des données',
        "Droit d'opposition au traitement",
        'Droit de retrait du consentement',
    ],
    'contact': {
        'email': 'dpo@abc-bedarieux.fr',
        'address': 'Association ABC, Bédarieux, France',
    },
    'availableActions': [
        {'action': 'export', 'description': 'Exporter toutes vos données personnelles au format JSON'},
        {'action': 'delete', 'description': 'Supprimer définitivement toutes vos données'},
        {'action': 'anonymize', 'description': 'Anonymiser vos données personnelles (conserve les statistiques anonymes)'},
    ],
}


def generate_token():
    """64 hex characters from 32 random bytes"""
    return secrets.token_hex(32)


class SubscriberService:
    """Lifecycle operations on top of a SubscriberRepository.

    mailer is anything with send_verification_email(email, url, first_name);
    in the app it is the email_service singleton. campaigns is a
    CampaignRepository; its cached totals are recounted after any delete or
    activation change.
    """

    def __init__(self, repository, mailer, base_url, campaigns):
        self.repository = repository
        self.mailer = mailer
        self.base_url = base_url.rstrip('/')
        self.campaigns = campaigns

    def _recount_campaigns_of(self, subscriber_id):
        self.campaigns.refresh_campaigns(self.campaigns.campaign_ids_for_subscriber(subscriber_id))

    def verification_url(self, token):
        return f"{self.base_url}/api/newsletter/verify?{urlencode({'token': token})}"

    def _send_verification(self, subscriber):
        try:
            self.mailer.send_verification_email(
                subscriber.email,
                self.verification_url(subscriber.verification_token),
                subscriber.first_name,
            )
            return True
        except MailTransportError as e:
            # Subscription is kept when the verification email cannot be sent
            logger.error(f"Verification email to {subscriber.email} failed: {e}")
            db_log('error', 'newsletter', 'Verification email failed', {
                'subscriber_id': subscriber.id, 'error': str(e),
            })
            return False

    def subscribe(self, data):
        """Create or reactivate a subscription from validated data.

        Returns (subscriber, reactivated, verification_sent).
        """
        subscriber = self.repository.by_email(data['email'])

        if subscriber is not None and subscriber.is_active:
            raise AlreadySubscribed()

        reactivated = subscriber is not None
        if subscriber is None:
            subscriber = Subscriber(
                email=data['email'],
                first_name=data.get('first_name'),
                last_name=data.get('last_name'),
                is_verified=False,
                source=data.get('source') or 'website',
            )
        else:
            subscriber.first_name = data.get('first_name') or subscriber.first_name
            subscriber.last_name = data.get('last_name') or subscriber.last_name

        subscriber.is_active = True
        subscriber.subscribed_at = utcnow()
        subscriber.verification_token = generate_token()
        subscriber.unsubscribe_token = generate_token()

        if subscriber.preferences is None:
            subscriber.preferences = SubscriberPreferences()
        subscriber.preferences.apply(data.get('preferences') or {})

        self.repository.save(subscriber)
        if reactivated:
            self._recount_campaigns_of(subscriber.id)

        db_log('info', 'newsletter', 'Subscriber reactivated' if reactivated else 'Subscriber created', {
            'subscriber_id': subscriber.id, 'source': subscriber.source,
        })

        verification_sent = False
        if not subscriber.is_verified:
            verification_sent = self._send_verification(subscriber)
        return subscriber, reactivated, verification_sent

    def status(self, email):
        subscriber = self.repository.by_email(email)
        return {
            'isSubscribed': bool(subscriber and subscriber.is_active),
            'isVerified': bool(subscriber and subscriber.is_verified),
            'subscribedAt': isoformat(subscriber.subscribed_at) if subscriber else None,
        }

    def verify(self, token):
        """Consume a verification token. A token works once."""
        subscriber = self.repository.by_verification_token(token)
        if subscriber is None:
            raise NotFound('Invalid or expired verification token')

        subscriber.is_verified = True
        subscriber.verified_at = utcnow()
        subscriber.verification_token = None
        self.repository.save(subscriber)

        db_log('info', 'newsletter', 'Subscriber verified', {'subscriber_id': subscriber.id})
        return subscriber

    def lookup_unsubscribe_token(self, token):
        subscriber = self.repository.by_unsubscribe_token(token)
        if subscriber is None:
            raise NotFound('Invalid unsubscribe token')
        return subscriber

    def unsubscribe(self, token=None, email=None):
        """Deactivate by unsubscribe token or by email. The row is kept."""
        if not token and not email:
            raise ValidationError('Unsubscribe token or email required',
                                  fields={'token': 'Token or email required'})

        if token:
            subscriber = self.repository.by_unsubscribe_token(token, active_only=True)
            if subscriber is None:
                raise NotFound('Invalid or expired unsubscribe token')
        else:
            subscriber = self.repository.by_email(email)
            if subscriber is None or not subscriber.is_active:
                raise NotFound('No active subscription found for this email')

        subscriber.is_active = False
        self.repository.save(subscriber)
        self._recount_campaigns_of(subscriber.id)

        db_log('info', 'newsletter', 'Subscriber unsubscribed', {
            'subscriber_id': subscriber.id, 'method': 'token' if token else 'email',
        })
        return subscriber

    # ==================== GDPR ====================

    def _require(self, email):
        subscriber = self.repository.by_email(email)
        if subscriber is None:
            raise NotFound('No data found for this email')
        return subscriber

    def gdpr_export(self, email):
        subscriber = self._require(email)
        db_log('info', 'gdpr', 'Personal data exported', {'subscriber_id': subscriber.id})
        return {
            'email': subscriber.email,
            'firstName': subscriber.first_name,
            'lastName': subscriber.last_name,
            'isActive': subscriber.is_active,
            'isVerified': subscriber.is_verified,
            'source': subscriber.source,
            'subscribedAt': isoformat(subscriber.subscribed_at),
            'verifiedAt': isoformat(subscriber.verified_at),
            'lastEmailSent': isoformat(subscriber.last_email_sent),
            'preferences': subscriber.preferences.to_dict() if subscriber.preferences else None,
        }

    def gdpr_delete(self, email):
        """Hard delete of the subscriber, its preferences and its send records"""
        subscriber = self._require(email)
        subscriber_id = subscriber.id
        campaign_ids = self.campaigns.campaign_ids_for_subscriber(subscriber_id)
        self.repository.delete(subscriber)
        self.campaigns.refresh_campaigns(campaign_ids)
        db_log('warning', 'gdpr', 'Subscriber data deleted', {'subscriber_id': subscriber_id})
        return subscriber_id

    def gdpr_anonymize(self, email):
        """Strip personal fields, keep the row so campaign counts still add up"""
        subscriber = self._require(email)
        subscriber.email = f"anonymized_{subscriber.id}@{ANONYMIZED_DOMAIN}"
        subscriber.first_name = None
        subscriber.last_name = None
        subscriber.is_active = False
        subscriber.verification_token = None
        subscriber.unsubscribe_token = None
        self.repository.save(subscriber)
        self._recount_campaigns_of(subscriber.id)
        db_log('warning', 'gdpr', 'Subscriber data anonymized', {'subscriber_id': subscriber.id})
        return subscriber

    @staticmethod
    def gdpr_info():
        return GDPR_INFO

    # ==================== Admin ====================

    def admin_add(self, data, principal):
        """Subscribers added by an admin skip double opt-in"""
        if self.repository.by_email(data['email']) is not None:
            raise AlreadySubscribed('This email is already subscribed')

        subscriber = Subscriber(
            email=data['email'],
            first_name=data.get('first_name'),
            last_name=data.get('last_name'),
            is_active=True,
            is_verified=True,
            verified_at=utcnow(),
            source='admin',
            unsubscribe_token=generate_token(),
        )
        subscriber.preferences = SubscriberPreferences()
        subscriber.preferences.apply(data.get('preferences') or {})
        self.repository.add(subscriber)

        db_log('info', 'newsletter', 'Subscriber added by admin', {
            'subscriber_id': subscriber.id, 'added_by': principal.user_id,
        })
        return subscriber

    def admin_update(self, subscriber_id, data, principal):
        """Apply a validated partial update: names, activation, verification, preferences"""
        subscriber = self.repository.get(subscriber_id)
        if subscriber is None:
            raise NotFound('Subscriber not found')
        was_active = subscriber.is_active

        for field in ('first_name', 'last_name'):
            if field in data:
                setattr(subscriber, field, data[field])

        if 'is_active' in data:
            subscriber.is_active = data['is_active']
            if subscriber.is_active and subscriber.unsubscribe_token is None:
                subscriber.unsubscribe_token = generate_token()

        if data.get('is_verified') is True and not subscriber.is_verified:
            subscriber.is_verified = True
            subscriber.verified_at = utcnow()
            subscriber.verification_token = None
        elif data.get('is_verified') is False:
            subscriber.is_verified = False
            subscriber.verified_at = None

        if 'preferences' in data:
            if subscriber.preferences is None:
                subscriber.preferences = SubscriberPreferences()
            subscriber.preferences.apply(data['preferences'])

        self.repository.save(subscriber)
        if subscriber.is_active != was_active:
            self._recount_campaigns_of(subscriber.id)

        db_log('info', 'newsletter', 'Subscriber updated by admin', {
            'subscriber_id': subscriber.id, 'fields': sorted(data), 'updated_by': principal.user_id,
        })
        return subscriber

    def admin_delete(self, subscriber_id, principal):
        subscriber = self.repository.get(subscriber_id)
        if subscriber is None:
            raise NotFound('Subscriber not found')
        campaign_ids = self.campaigns.campaign_ids_for_subscriber(subscriber_id)
        self.repository.delete(subscriber)
        self.campaigns.refresh_campaigns(campaign_ids)
        db_log('warning', 'newsletter', 'Subscriber deleted by admin', {
            'subscriber_id': subscriber_id, 'deleted_by': principal.user_id,
        })

    # ==================== Preferences ====================

    def find(self, token=None, email=None):
        """Subscriber behind an unsubscribe token or an email address, active or not"""
        if token:
            subscriber = self.repository.by_unsubscribe_token(token)
        else:
            subscriber = self.repository.by_email(email)
        if subscriber is None:
            raise NotFound('No subscription found')
        return subscriber

    def update_preferences(self, preferences, token=None, email=None):
        subscriber = self.find(token=token, email=email)
        if subscriber.preferences is None:
            subscriber.preferences = SubscriberPreferences()
        subscriber.preferences.apply(preferences)
        self.repository.save(subscriber)

        db_log('info', 'newsletter', 'Preferences updated', {
            'subscriber_id': subscriber.id, 'fields': sorted(preferences),
        })
        return subscriber

    # ==================== Signed-in account ====================

    def account_subscribe(self, email, data):
        """Subscribe a signed-in user. Their address was checked by the auth
        provider, so a new row starts verified and no confirmation is sent.

        Returns (subscriber, reactivated).
        """
        subscriber = self.repository.by_email(email)
        reactivated = subscriber is not None and not subscriber.is_active

        if subscriber is None:
            subscriber = Subscriber(
                email=email,
                first_name=data.get('first_name'),
                last_name=data.get('last_name'),
                is_verified=True,
                verified_at=utcnow(),
                source='account',
            )

        subscriber.is_active = True
        if subscriber.unsubscribe_token is None:
            subscriber.unsubscribe_token = generate_token()
        if subscriber.preferences is None:
            subscriber.preferences = SubscriberPreferences()
        subscriber.preferences.apply(data['preferences'])

        self.repository.save(subscriber)
        if reactivated:
            self._recount_campaigns_of(subscriber.id)

        db_log('info', 'newsletter', 'Account subscribed', {
            'subscriber_id': subscriber.id, 'reactivated': reactivated,
        })
        return subscriber, reactivated
