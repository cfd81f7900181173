"""
Tracking Module
===============

Provides:
- GET /api/newsletter/track/open -- 1x1 tracking pixel
- GET /api/newsletter/track/click -- click tracking and safe redirect
- GET /api/newsletter/web-view -- browser copy of a campaign
"""

from flask import Blueprint

tracking_bp = Blueprint('tracking', __name__, url_prefix='/api/newsletter')

from . import routes
