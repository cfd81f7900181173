"""
Bedarieux - ABC Bédarieux newsletter platform
=============================================

Flask modules for the association's newsletter:
- Public subscriber API (subscribe, verify, unsubscribe, GDPR requests)
- Campaign administration and sending
- Open and click tracking, web-view copies
- Campaign statistics

Usage:
    from bedarieux import Bedarieux

    app = Flask(__name__)
    Bedarieux(app)
"""

__version__ = '0.1.0'
__author__ = 'ABC Bédarieux'

from .extension import Bedarieux, create_app

__all__ = ['Bedarieux', 'create_app']
