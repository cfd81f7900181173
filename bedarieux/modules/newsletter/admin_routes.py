"""
Subscriber admin routes (admin, moderator or editor session required).

- GET / -- paginated list with search, status and verified filters
- POST / -- add a subscriber (auto-verified)
- PATCH /<id> -- activate, deactivate, verify, rename or change preferences
- DELETE /<id> -- hard delete
- GET /export -- active subscribers as JSON, or every subscriber as CSV
"""

import csv
import io
import logging
from datetime import datetime

from flask import request, jsonify, g, Response

from ...core.auth import admin_required
from ...core.database import db, isoformat
from . import subscribers_admin_bp
from .repository import SubscriberRepository
from .routes import get_subscriber_service
from .validation import validate_subscribe, validate_subscriber_update

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    'Email', 'Prénom', 'Nom', 'Statut', 'Vérifié', "Date d'inscription",
    'Dernier email', 'Événements', 'Commerces', 'Offres', 'Actualités', 'Fréquence',
]


def _pagination(page, limit, total):
    total_pages = (total + limit - 1) // limit
    return {
        'page': page,
        'limit': limit,
        'totalCount': total,
        'totalPages': total_pages,
        'hasNextPage': page < total_pages,
        'hasPrevPage': page > 1,
    }


@subscribers_admin_bp.route('', methods=['GET'])
@admin_required
def list_subscribers():
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 25, type=int), 1), 100)
    verified = {'verified': True, 'unverified': False}.get(request.args.get('verified'))

    repository = SubscriberRepository(db.session)
    subscribers, total = repository.search(
        search=request.args.get('search'),
        status=request.args.get('status'),
        verified=verified,
        page=page,
        limit=limit,
    )
    return jsonify({
        'success': True,
        'subscribers': [subscriber.to_dict() for subscriber in subscribers],
        'pagination': _pagination(page, limit, total),
        'counts': repository.counts(),
    }), 200


@subscribers_admin_bp.route('', methods=['POST'])
@admin_required
def add_subscriber():
    data = validate_subscribe(request.get_json(silent=True))
    subscriber = get_subscriber_service().admin_add(data, g.principal)
    return jsonify({
        'success': True,
        'message': 'Subscriber added',
        'subscriber': subscriber.to_dict(),
    }), 201


@subscribers_admin_bp.route('/<subscriber_id>', methods=['PATCH'])
@admin_required
def update_subscriber(subscriber_id):
    data = validate_subscriber_update(request.get_json(silent=True))
    subscriber = get_subscriber_service().admin_update(subscriber_id, data, g.principal)
    return jsonify({
        'success': True,
        'message': 'Subscriber updated',
        'subscriber': subscriber.to_dict(),
    }), 200


@subscribers_admin_bp.route('/<subscriber_id>', methods=['DELETE'])
@admin_required
def delete_subscriber(subscriber_id):
    get_subscriber_service().admin_delete(subscriber_id, g.principal)
    return jsonify({'success': True, 'message': 'Subscriber deleted'}), 200


def _yes_no(value):
    return 'Oui' if value else 'Non'


def _csv_response(subscribers):
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(CSV_HEADERS)
    for subscriber in subscribers:
        preferences = subscriber.preferences
        writer.writerow([
            subscriber.email,
            subscriber.first_name or '',
            subscriber.last_name or '',
            'Actif' if subscriber.is_active else 'Inactif',
            'Vérifié' if subscriber.is_verified else 'Non vérifié',
            subscriber.subscribed_at.strftime('%d/%m/%Y'),
            subscriber.last_email_sent.strftime('%d/%m/%Y') if subscriber.last_email_sent else '',
            _yes_no(preferences and preferences.events),
            _yes_no(preferences and preferences.places),
            _yes_no(preferences and preferences.offers),
            _yes_no(preferences and preferences.news),
            preferences.frequency if preferences else 'WEEKLY',
        ])

    filename = f"newsletter-subscribers-{datetime.now().strftime('%Y-%m-%d')}.csv"
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@subscribers_admin_bp.route('/export', methods=['GET'])
@admin_required
def export_subscribers():
    """Export subscribers list, ?format=csv for a spreadsheet of every subscriber"""
    repository = SubscriberRepository(db.session)

    if request.args.get('format') == 'csv':
        subscribers = repository.all()
        logger.info(f"CSV export of {len(subscribers)} subscribers by {g.principal.user_id}")
        return _csv_response(subscribers)

    subscribers = repository.active()
    logger.info(f"Export of {len(subscribers)} active subscribers by {g.principal.user_id}")
    return jsonify({
        'success': True,
        'subscribers': [
            {
                'email': subscriber.email,
                'firstName': subscriber.first_name,
                'lastName': subscriber.last_name,
                'isVerified': subscriber.is_verified,
                'source': subscriber.source,
                'subscribedAt': isoformat(subscriber.subscribed_at),
                'preferences': subscriber.preferences.to_dict() if subscriber.preferences else None,
            }
            for subscriber in subscribers
        ],
        'total_count': len(subscribers),
        'exported_at': datetime.now().isoformat(),
    }), 200
