"""
Newsletter Routes
=================

Provides:
- POST /subscribe -- subscribe or reactivate
- GET /subscribe?email= -- subscription status
- GET|POST /verify -- consume a verification token
- GET /unsubscribe?token= -- unsubscribe token lookup
- POST /unsubscribe -- unsubscribe by token or email
- GET /gdpr -- data-protection information
- POST /gdpr -- export, delete or anonymize personal data
- GET|PUT /preferences -- read or change preferences by token or email
- GET|POST /account -- the signed-in user's own subscription
"""

import logging

from flask import request, jsonify, current_app, g

from ...core.auth import login_required
from ...core.database import db, utcnow, isoformat
from ..campaigns.repository import CampaignRepository
from ..email.email_service import email_service
from . import newsletter_bp
from .repository import SubscriberRepository
from .service import SubscriberService
from .validation import (
    validate_subscribe, validate_token, validate_lookup_email, validate_gdpr,
    validate_preferences_update, validate_account_action,
)

logger = logging.getLogger(__name__)


def get_client_ip():
    """Get client IP address from request"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr


def get_subscriber_service():
    return SubscriberService(
        SubscriberRepository(db.session),
        email_service,
        current_app.config['BASE_URL'],
        CampaignRepository(db.session),
    )


@newsletter_bp.route('/subscribe', methods=['POST'])
def subscribe():
    """Subscribe to the newsletter"""
    data = validate_subscribe(request.get_json(silent=True))
    logger.info(f"Subscribe request from {get_client_ip()}")

    subscriber, reactivated, verification_sent = get_subscriber_service().subscribe(data)

    if reactivated:
        message = 'Your subscription has been reactivated'
    else:
        message = 'Subscription successful! You will receive a confirmation email.'

    return jsonify({
        'success': True,
        'message': message,
        'subscriber': subscriber.to_dict(),
        'reactivated': reactivated,
        'requiresVerification': not subscriber.is_verified,
        'verificationEmailSent': verification_sent,
    }), 200


@newsletter_bp.route('/subscribe', methods=['GET'])
def subscription_status():
    """Subscription status for an email address"""
    email = validate_lookup_email(request.args.get('email'))
    status = get_subscriber_service().status(email)
    return jsonify({'success': True, **status}), 200


@newsletter_bp.route('/verify', methods=['GET', 'POST'])
def verify():
    """Confirm a subscription with the token sent by email"""
    if request.method == 'POST':
        token = (request.get_json(silent=True) or {}).get('token')
    else:
        token = request.args.get('token')
    token = validate_token(token)

    subscriber = get_subscriber_service().verify(token)
    return jsonify({
        'success': True,
        'message': 'Your subscription is confirmed',
        'subscriber': {
            'email': subscriber.email,
            'isVerified': subscriber.is_verified,
            'verifiedAt': isoformat(subscriber.verified_at),
        },
    }), 200


@newsletter_bp.route('/unsubscribe', methods=['GET'])
def unsubscribe_lookup():
    """Check an unsubscribe token before asking for confirmation"""
    token = validate_token(request.args.get('token'))
    subscriber = get_subscriber_service().lookup_unsubscribe_token(token)
    return jsonify({
        'success': True,
        'isValid': True,
        'subscriber': {
            'email': subscriber.email,
            'firstName': subscriber.first_name,
            'lastName': subscriber.last_name,
            'isActive': subscriber.is_active,
            'subscribedAt': isoformat(subscriber.subscribed_at),
        },
    }), 200


@newsletter_bp.route('/unsubscribe', methods=['POST'])
def unsubscribe():
    """Unsubscribe by token (email link) or by email (profile, form)"""
    data = request.get_json(silent=True) or {}
    token = data.get('token')
    email = data.get('email')
    if token:
        token = validate_token(token)
    elif email:
        email = validate_lookup_email(email)

    subscriber = get_subscriber_service().unsubscribe(token=token, email=email)
    return jsonify({
        'success': True,
        'message': 'You have been unsubscribed from our newsletter',
        'subscriber': {'email': subscriber.email, 'isActive': subscriber.is_active},
    }), 200


@newsletter_bp.route('/gdpr', methods=['GET'])
def gdpr_info():
    return jsonify({'success': True, 'info': SubscriberService.gdpr_info()}), 200


@newsletter_bp.route('/gdpr', methods=['POST'])
def gdpr_request():
    """Data subject request: export, delete or anonymize"""
    email, action = validate_gdpr(request.get_json(silent=True))
    service = get_subscriber_service()
    now = isoformat(utcnow())

    if action == 'export':
        return jsonify({
            'success': True,
            'message': 'Data exported successfully',
            'data': service.gdpr_export(email),
            'exportedAt': now,
        }), 200

    if action == 'delete':
        service.gdpr_delete(email)
        return jsonify({
            'success': True,
            'message': 'All your data has been permanently deleted',
            'deletedAt': now,
        }), 200

    service.gdpr_anonymize(email)
    return jsonify({
        'success': True,
        'message': 'Your personal data has been anonymized',
        'anonymizedAt': now,
    }), 200


def _preferences_view(subscriber):
    return {
        'email': subscriber.email,
        'firstName': subscriber.first_name,
        'isActive': subscriber.is_active,
        'isVerified': subscriber.is_verified,
        'preferences': subscriber.preferences.to_dict() if subscriber.preferences else None,
    }


@newsletter_bp.route('/preferences', methods=['GET'])
def get_preferences():
    """Current preferences, looked up by ?token= (email links) or ?email="""
    token = request.args.get('token')
    email = None
    if token:
        token = validate_token(token)
    else:
        email = validate_lookup_email(request.args.get('email'))

    subscriber = get_subscriber_service().find(token=token, email=email)
    return jsonify({'success': True, 'subscriber': _preferences_view(subscriber)}), 200


@newsletter_bp.route('/preferences', methods=['PUT'])
def update_preferences():
    token, email, preferences = validate_preferences_update(request.get_json(silent=True))
    subscriber = get_subscriber_service().update_preferences(preferences, token=token, email=email)
    return jsonify({
        'success': True,
        'message': 'Your preferences have been updated',
        'subscriber': _preferences_view(subscriber),
    }), 200


@newsletter_bp.route('/account', methods=['GET'])
@login_required
def account_status():
    """Subscription of the signed-in user, if any"""
    email = validate_lookup_email(g.principal.email)
    subscriber = SubscriberRepository(db.session).by_email(email)
    return jsonify({
        'success': True,
        'subscriber': subscriber.to_dict() if subscriber else None,
        'isSubscribed': bool(subscriber and subscriber.is_active),
    }), 200


@newsletter_bp.route('/account', methods=['POST'])
@login_required
def account_action():
    """subscribe, unsubscribe or updatePreferences for the signed-in user"""
    action, data = validate_account_action(request.get_json(silent=True))
    email = validate_lookup_email(g.principal.email)
    service = get_subscriber_service()

    if action == 'subscribe':
        subscriber, reactivated = service.account_subscribe(email, data)
        message = 'Your subscription has been reactivated' if reactivated else 'You are now subscribed'
        return jsonify({'success': True, 'message': message, 'subscriber': subscriber.to_dict()}), 200

    if action == 'unsubscribe':
        service.unsubscribe(email=email)
        return jsonify({'success': True, 'message': 'You have been unsubscribed from our newsletter'}), 200

    subscriber = service.update_preferences(data['preferences'], email=email)
    return jsonify({
        'success': True,
        'message': 'Your preferences have been updated',
        'subscriber': subscriber.to_dict(),
    }), 200
