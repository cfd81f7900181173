"""
Newsletter Module
=================

Provides:
- Public subscriber API under /api/newsletter (subscribe, verify,
  unsubscribe, GDPR)
- Admin subscriber management under /api/admin/newsletter/subscribers
"""

from flask import Blueprint

newsletter_bp = Blueprint('newsletter', __name__, url_prefix='/api/newsletter')
subscribers_admin_bp = Blueprint(
    'subscribers_admin',
    __name__,
    url_prefix='/api/admin/newsletter/subscribers',
)

from . import routes, admin_routes
