"""
Error taxonomy
==============

Exceptions raised by the services and turned into JSON responses by the
handlers registered in register_error_handlers(). Mail transport failures
are not HTTP errors: the send orchestrator records them per subscriber.
"""

import logging

from flask import jsonify

from .database import db
from .logging_service import LoggingService

logger = logging.getLogger(__name__)


class NewsletterError(Exception):
    status_code = 500
    message = 'An unexpected error occurred'

    def __init__(self, message=None, **payload):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.payload = payload

    def to_dict(self):
        body = {'success': False, 'error': self.message}
        body.update(self.payload)
        return body


class ValidationError(NewsletterError):
    status_code = 400
    message = 'Invalid data'

    def __init__(self, message=None, fields=None, **payload):
        super().__init__(message, **payload)
        self.fields = fields or {}

    def to_dict(self):
        body = super().to_dict()
        if self.fields:
            body['fields'] = self.fields
        return body


class AuthenticationRequired(NewsletterError):
    status_code = 401
    message = 'Authentication required'


class PermissionDenied(NewsletterError):
    status_code = 403
    message = 'Insufficient permissions'


class NotFound(NewsletterError):
    status_code = 404
    message = 'Not found'


class AlreadySubscribed(NewsletterError):
    status_code = 400
    message = 'This email is already subscribed to the newsletter'

    def __init__(self, message=None):
        super().__init__(message, isAlreadySubscribed=True)


class InvalidCampaignState(NewsletterError):
    status_code = 400
    message = 'Campaign cannot be modified in its current state'


class NoRecipients(NewsletterError):
    status_code = 400
    message = 'No eligible subscribers for this campaign'


class MailTransportError(Exception):
    """Raised by the email service when a message could not be handed off"""


def register_error_handlers(app):
    """JSON error responses for the whole app"""

    @app.errorhandler(NewsletterError)
    def handle_newsletter_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def handle_internal_error(error):
        original = getattr(error, 'original_exception', None) or error
        logger.exception(f"Unhandled error: {original}")
        db.session.rollback()
        LoggingService.log_error_with_traceback('app', original)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
