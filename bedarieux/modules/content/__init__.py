"""
Content Module
==============

Provides:
- Read models for the events, places and posts a campaign can include
- Admin listing of content available to the campaign editor
"""

from flask import Blueprint

content_bp = Blueprint(
    'content',
    __name__,
    url_prefix='/api/admin/newsletter/content',
)

from . import routes
