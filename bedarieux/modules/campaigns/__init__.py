"""
Campaigns Module
================

Provides:
- Campaign CRUD, archive, preview and test email for the admin
- Sequential send to every eligible subscriber, with per-subscriber
  delivery records
- Statistics computed from those records
"""

from flask import Blueprint

campaigns_bp = Blueprint(
    'campaigns',
    __name__,
    url_prefix='/api/admin/newsletter',
)

from . import routes
