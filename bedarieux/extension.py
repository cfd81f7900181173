"""
Bedarieux Flask extension
=========================

Wires the newsletter modules into a Flask app:

    from flask import Flask
    from bedarieux import Bedarieux

    app = Flask(__name__)
    Bedarieux(app)

or, for a ready-configured app, ``create_app()``.
"""

import logging

import click
from flask import Flask
from flask_cors import CORS

from .core.config import Config
from .core.database import init_database
from .core.errors import register_error_handlers
from .core.logging_service import LoggingService

logger = logging.getLogger(__name__)


class Bedarieux:
    """Registers the newsletter blueprints and their shared services"""

    def __init__(self, app=None):
        self.app = None
        self._registered = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self._apply_config(app)

        init_database(app)

        from .modules.email.email_service import email_service
        email_service.init_app(app)

        self._register_blueprints(app)

        CORS(app, resources={r"/api/newsletter/*": {"origins": app.config['CORS_ORIGINS']}})
        register_error_handlers(app)
        self._register_commands(app)

        @app.context_processor
        def inject_bedarieux():
            return {
                'bedarieux_config': {
                    'base_url': app.config['BASE_URL'],
                    'email_provider': app.config['EMAIL_PROVIDER'],
                },
                'brand_name': app.config.get('EMAIL_BRAND_NAME', 'ABC Bédarieux'),
            }

        app.extensions['bedarieux'] = self
        logger.info(f"Bedarieux initialised with modules: {', '.join(self._registered)}")

    @staticmethod
    def _apply_config(app):
        """Fill in defaults from Config without overriding values already set on the app"""
        for key, value in Config.as_dict().items():
            app.config.setdefault(key, value)
        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            app.config['SQLALCHEMY_DATABASE_URI'] = Config.database_uri(app.config['DB_DIR'])
        app.config.setdefault('SQLALCHEMY_TRACK_MODIFICATIONS', False)

    def _register_blueprints(self, app):
        from .modules.campaigns import campaigns_bp
        from .modules.content import content_bp
        from .modules.newsletter import newsletter_bp, subscribers_admin_bp
        from .modules.tracking import tracking_bp

        for name, blueprint in (
            ('newsletter', newsletter_bp),
            ('subscribers_admin', subscribers_admin_bp),
            ('campaigns', campaigns_bp),
            ('content', content_bp),
            ('tracking', tracking_bp),
        ):
            app.register_blueprint(blueprint)
            self._registered.append(name)

    @staticmethod
    def _register_commands(app):
        @app.cli.command('cleanup-logs')
        @click.option('--days', type=int, default=None, help='Days of logs to keep (default: LOG_RETENTION_DAYS)')
        def cleanup_logs(days):
            """Delete application log entries older than the retention period."""
            if days is None:
                days = app.config['LOG_RETENTION_DAYS']
            deleted = LoggingService.cleanup_old_logs(days)
            click.echo(f"Deleted {deleted} log entries")

    def get_registered_modules(self):
        return list(self._registered)


def create_app(overrides=None):
    """Flask app with every newsletter module registered.

    overrides are applied to app.config before initialisation, so they win
    over environment defaults.
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = Config.SECRET_KEY
    if overrides:
        app.config.update(overrides)
    Bedarieux(app)
    return app
