"""
Centralized logging service for the newsletter platform.
Provides structured logging with database storage and easy integration.
"""

import json
import logging
import traceback
from datetime import timedelta

from flask import request, has_request_context, session

from .database import db, utcnow

logger = logging.getLogger(__name__)


class AppLog(db.Model):
    __tablename__ = 'app_logs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    level = db.Column(db.String(10), nullable=False, index=True)
    source = db.Column(db.String(50), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    details = db.Column(db.Text)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(500))
    request_path = db.Column(db.String(500))
    user_id = db.Column(db.String(64))


class LoggingService:
    """Persists log entries to app_logs, on a connection separate from the
    request session so a log write never commits or rolls back business data."""

    @staticmethod
    def _get_request_context():
        """Extract request context information"""
        if not has_request_context():
            return None, None, None

        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
        if ip_address and ',' in ip_address:
            ip_address = ip_address.split(',')[0].strip()

        user_agent = request.headers.get('User-Agent', '')[:500]
        return ip_address, user_agent, request.path

    @staticmethod
    def log(level, source, message, details=None, user_id=None):
        """
        Log a message to the database

        Args:
            level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            source (str): Source component (campaigns, newsletter, tracking, ...)
            message (str): Main log message
            details (str/dict): Additional details (will be JSON-encoded if dict)
            user_id (str): Optional user identifier
        """
        ip_address, user_agent, request_path = LoggingService._get_request_context()

        if isinstance(details, dict):
            details = json.dumps(details, indent=2, default=str)

        if user_id is None and has_request_context():
            user_id = session.get('user_id')

        try:
            with db.engine.begin() as conn:
                conn.execute(AppLog.__table__.insert().values(
                    timestamp=utcnow(),
                    level=level.upper(),
                    source=source,
                    message=message,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    request_path=request_path,
                    user_id=user_id,
                ))
        except Exception as e:
            # Fallback to the process logger if the database write fails
            logger.warning(f"[{level.upper()}] [{source}] {message} (log write failed: {e})")
            if details:
                logger.warning(f"Details: {details}")

    @staticmethod
    def info(source, message, details=None, user_id=None):
        LoggingService.log('INFO', source, message, details, user_id)

    @staticmethod
    def error(source, message, details=None, user_id=None):
        LoggingService.log('ERROR', source, message, details, user_id)

    @staticmethod
    def log_error_with_traceback(source, error, details=None):
        """Log error with full traceback"""
        error_details = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'traceback': traceback.format_exc()
        }
        if details:
            error_details['additional_details'] = details

        LoggingService.error(source, f"Exception occurred: {type(error).__name__}", error_details)

    @staticmethod
    def recent(source=None, limit=50):
        query = db.select(AppLog).order_by(AppLog.timestamp.desc(), AppLog.id.desc()).limit(limit)
        if source:
            query = query.where(AppLog.source == source)
        return db.session.execute(query).scalars().all()

    @staticmethod
    def cleanup_old_logs(days_to_keep=30):
        """Clean up old log entries, returns the number of deleted rows"""
        cutoff_date = utcnow() - timedelta(days=days_to_keep)
        with db.engine.begin() as conn:
            result = conn.execute(
                AppLog.__table__.delete().where(AppLog.__table__.c.timestamp < cutoff_date)
            )
            deleted_count = result.rowcount

        LoggingService.info('system', f"Cleaned up {deleted_count} old log entries")
        return deleted_count


def db_log(level, source, message, details=None):
    """Shortcut used by the modules: LoggingService.log with positional level"""
    LoggingService.log(level, source, message, details)
