"""
Bedarieux Core
==============

Core utilities and shared functionality for the newsletter modules.
"""

from .config import Config
from .database import db
from .logging_service import LoggingService, db_log
from .auth import Principal, admin_required, current_principal

__all__ = [
    'Config', 'db', 'LoggingService', 'db_log',
    'Principal', 'admin_required', 'current_principal',
]
