from flask import jsonify, request

from ...core.auth import admin_required
from ...core.database import db
from . import content_bp
from .repository import ContentRepository


@content_bp.route('/available', methods=['GET'])
@admin_required
def available_content():
    """Events, places and posts selectable for a campaign"""
    limit = min(request.args.get('limit', 50, type=int), 200)
    content = ContentRepository(db.session).available(limit=limit)
    return jsonify({
        'success': True,
        'events': [event.to_dict() for event in content['events']],
        'places': [place.to_dict() for place in content['places']],
        'posts': [post.to_dict() for post in content['posts']],
    }), 200
