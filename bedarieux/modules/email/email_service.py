"""
Email Service Module
====================

Configurable email service supporting SMTP, Resend and a
console transport for development. The provider is selected via the
EMAIL_PROVIDER config ('smtp', 'resend' or 'console').
All branding is configurable through Flask app config.
"""

import re
import time
import logging
import secrets
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from html import escape
from typing import Optional

import requests
import resend
from resend.exceptions import ResendError

from ...core.database import db, utcnow
from ...core.errors import MailTransportError
from .models import EmailLog

logger = logging.getLogger(__name__)

# Rejects consecutive dots, leading/trailing dots in local part
_VALID_EMAIL = re.compile(r'^[a-zA-Z0-9_%+-]+(\.[a-zA-Z0-9_%+-]+)*@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$')
_TAG = re.compile(r'<[^>]*>')
_BLANK_LINES = re.compile(r'\n\s*\n+')

PROVIDERS = ('smtp', 'resend', 'console')


def html_to_text(html_body):
    """Plain-text alternative for clients that do not render HTML"""
    text = re.sub(r'(?is)<(style|script)[^>]*>.*?</\1>', '', html_body)
    text = re.sub(r'(?i)<br\s*/?>', '\n', text)
    text = _TAG.sub('', text)
    return _BLANK_LINES.sub('\n\n', text).strip()


class EmailService:
    """
    Configurable email service supporting SMTP, Resend and a console transport.

    Configuration (set in Flask app.config):
        EMAIL_PROVIDER: 'smtp', 'resend' or 'console' (default)
        EMAIL_ADDRESS: Sender address (default: noreply@abc-bedarieux.fr)
        EMAIL_FROM_NAME: Display name of the sender
        EMAIL_HOST / EMAIL_PORT: SMTP server (only needed if provider is 'smtp')
        EMAIL_USERNAME / EMAIL_PASSWORD: SMTP credentials (optional)
        EMAIL_USE_TLS: Issue STARTTLS before login (default: True)
        RESEND_API_KEY: Resend API key (required if provider is 'resend')
        EMAIL_BRAND_NAME / EMAIL_BRAND_TAGLINE: Branding used in templates
        EMAIL_STYLE: dict overriding template colours and fonts
    """

    def __init__(self, app=None):
        self.provider = 'console'
        self.sender_email = None
        self.from_name = None
        self.brand_name = 'ABC Bédarieux'
        self.brand_tagline = ''
        self.api_key = None
        self.smtp_host = None
        self.smtp_port = 587
        self.smtp_username = None
        self.smtp_password = None
        self.smtp_use_tls = True
        self.style = {}

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize email service with Flask app configuration"""
        self.provider = app.config.get('EMAIL_PROVIDER', 'console').lower()
        if self.provider not in PROVIDERS:
            logger.warning(f"Unknown EMAIL_PROVIDER '{self.provider}', falling back to console")
            self.provider = 'console'
        logger.info(f"=== INITIALIZING EMAIL SERVICE (provider: {self.provider}) ===")

        self.sender_email = app.config.get('EMAIL_ADDRESS', 'noreply@abc-bedarieux.fr')
        self.from_name = app.config.get('EMAIL_FROM_NAME', 'ABC Bédarieux')

        self.brand_name = app.config.get('EMAIL_BRAND_NAME', 'ABC Bédarieux')
        self.brand_tagline = app.config.get('EMAIL_BRAND_TAGLINE', '')
        custom_style = app.config.get('EMAIL_STYLE', {})
        self.style = {
            'bg': custom_style.get('bg', '#f5f5f5'),
            'card_bg': custom_style.get('card_bg', '#ffffff'),
            'header_bg': custom_style.get('header_bg', 'linear-gradient(135deg, #10b981, #059669)'),
            'header_text': custom_style.get('header_text', '#ffffff'),
            'text': custom_style.get('text', '#333333'),
            'heading': custom_style.get('heading', '#1f2937'),
            'text_secondary': custom_style.get('text_secondary', '#6b7280'),
            'accent': custom_style.get('accent', '#10b981'),
            'card_border': custom_style.get('card_border', '#e5e7eb'),
            'link': custom_style.get('link', '#3b82f6'),
            'btn_bg': custom_style.get('btn_bg', '#3b82f6'),
            'btn_text': custom_style.get('btn_text', '#ffffff'),
            'footer_bg': custom_style.get('footer_bg', '#f3f4f6'),
            'font': custom_style.get('font', "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif"),
        }

        logger.info(f"Sender email: {self.sender_email}")
        logger.info(f"Brand name: {self.brand_name}")

        if self.provider == 'smtp':
            self._init_smtp(app)
        elif self.provider == 'resend':
            self._init_resend(app)
        else:
            logger.info("Console email transport active - messages are logged, not sent")

    def _init_resend(self, app):
        """Initialize Resend provider"""
        self.api_key = app.config.get('RESEND_API_KEY')

        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - email sending disabled")
            return

        resend.api_key = self.api_key
        logger.info("Resend API client initialized successfully")

    def _init_smtp(self, app):
        """Initialize SMTP provider"""
        self.smtp_host = app.config.get('EMAIL_HOST')
        self.smtp_port = int(app.config.get('EMAIL_PORT', 587))
        self.smtp_username = app.config.get('EMAIL_USERNAME')
        self.smtp_password = app.config.get('EMAIL_PASSWORD')
        self.smtp_use_tls = app.config.get('EMAIL_USE_TLS', True)

        if not self.smtp_host:
            logger.warning("EMAIL_HOST not configured - SMTP email sending disabled")
            return

        logger.info(f"SMTP configured: {self.smtp_host}:{self.smtp_port}")

    @property
    def from_header(self):
        if self.from_name:
            return formataddr((self.from_name, self.sender_email))
        return self.sender_email

    def _log_email(self, recipient: str, subject: str, email_type: Optional[str],
                   status: str, message_id: str = None, error_message: str = None):
        """Log email attempt to database"""
        try:
            with db.engine.begin() as conn:
                conn.execute(EmailLog.__table__.insert().values(
                    recipient=recipient,
                    subject=subject[:300],
                    email_type=email_type,
                    provider=self.provider,
                    status=status,
                    message_id=message_id,
                    error_message=error_message,
                    sent_at=utcnow(),
                ))
        except Exception as e:
            logger.error(f"Failed to log email to database: {e}")

    def send_email(self, to: str, subject: str, html_body: str,
                   text_body: Optional[str] = None, email_type: Optional[str] = None) -> str:
        """
        Send one email via the configured provider.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML content of the email
            text_body: Plain text content (derived from the HTML when omitted)
            email_type: Label stored in email_logs (newsletter, verification, test)

        Returns:
            str: The provider's message id

        Raises:
            MailTransportError: invalid address, missing configuration or
                provider failure
        """
        try:
            if not to or not _VALID_EMAIL.match(to):
                raise MailTransportError(f"Invalid recipient address: {to!r}")

            if not self.sender_email:
                raise MailTransportError("Sender email not configured")

            if text_body is None:
                text_body = html_to_text(html_body)

            logger.info(f"Sending email from: {self.sender_email} to: {to}")
            logger.debug(f"Subject: {subject}")

            if self.provider == 'smtp':
                message_id = self._send_via_smtp(to, subject, html_body, text_body)
            elif self.provider == 'resend':
                message_id = self._send_via_resend(to, subject, html_body, text_body)
            else:
                message_id = self._send_via_console(to, subject, html_body, text_body)
        except MailTransportError as e:
            logger.error(f"Error sending to {to}: {e}")
            self._log_email(to or '', subject, email_type, 'failed', error_message=str(e))
            raise

        self._log_email(to, subject, email_type, 'sent', message_id=message_id)
        return message_id

    def _send_via_console(self, recipient: str, subject: str, html_body: str,
                          text_body: str) -> str:
        """Development transport: log the message instead of sending it"""
        message_id = f"dev-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        logger.info(f"[console email] to={recipient} subject={subject!r} id={message_id}")
        logger.debug(f"[console email] preview: {text_body[:200]}...")
        return message_id

    def _send_via_resend(self, recipient: str, subject: str, html_body: str,
                         text_body: str) -> str:
        """Send a single email via Resend API"""
        if not self.api_key:
            raise MailTransportError("Resend API key not configured")

        email_params = {
            "from": self.from_header,
            "to": [recipient],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }

        try:
            r = resend.Emails.send(email_params)
        except requests.RequestException as e:
            raise MailTransportError(f"Resend request failed: {e}") from e
        except (ResendError, RuntimeError) as e:
            # RuntimeError wraps transport failures in recent SDK releases
            raise MailTransportError(f"Resend error: {e}") from e
        logger.info(f"Resend response: {r}")

        if not r or not r.get('id'):
            raise MailTransportError(f"Resend response without message id: {r}")

        logger.debug(f"Email sent successfully to: {recipient}, ID: {r['id']}")
        return r['id']

    def _send_via_smtp(self, recipient: str, subject: str, html_body: str,
                       text_body: str) -> str:
        """Send a single email via SMTP"""
        if not self.smtp_host:
            raise MailTransportError("SMTP host not configured")

        msg = MIMEMultipart('alternative')
        msg['From'] = self.from_header
        msg['To'] = recipient
        msg['Subject'] = subject
        message_id = make_msgid(domain=self.sender_email.split('@')[-1])
        msg['Message-ID'] = message_id

        msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                if self.smtp_use_tls:
                    server.starttls()
                if self.smtp_username and self.smtp_password:
                    server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailTransportError(f"SMTP error: {e}") from e

        logger.info(f"SMTP email sent to {recipient}")
        return message_id

    # ==================== Verification Email ====================

    def send_verification_email(self, email: str, verification_url: str,
                                first_name: Optional[str] = None) -> str:
        """Send the double opt-in email that confirms a subscription"""
        subject = f"Confirmez votre abonnement - {self.brand_name}"
        html_body = self._get_verification_template(verification_url, first_name)
        text_body = f"""
{f'Bonjour {first_name},' if first_name else 'Bonjour,'}

Merci de vous être abonné à notre newsletter !

Pour confirmer votre abonnement, ouvrez ce lien :
{verification_url}

Si vous n'avez pas demandé cet abonnement, vous pouvez ignorer cet email.

{self.brand_name}
        """
        return self.send_email(email, subject, html_body, text_body, email_type='verification')

    def _get_verification_template(self, verification_url: str,
                                   first_name: Optional[str] = None) -> str:
        s = self.style
        greeting = f'<p>Bonjour {escape(first_name)},</p>' if first_name else ''
        return f"""
<!DOCTYPE html>
<html lang="fr">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Confirmez votre abonnement - {self.brand_name}</title>
</head>
<body style="font-family: {s['font']}; line-height: 1.6; color: {s['text']}; background-color: {s['bg']}; margin: 0; padding: 20px;">
    <div style="max-width: 500px; margin: 0 auto; background: {s['card_bg']}; border-radius: 12px; overflow: hidden; box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);">
        <div style="background: {s['header_bg']}; color: {s['header_text']}; padding: 30px 20px; text-align: center;">
            <h1 style="margin: 0;">Bienvenue !</h1>
            <p style="margin: 5px 0 0 0; opacity: 0.9;">{self.brand_name}</p>
        </div>

        <div style="padding: 30px 20px; text-align: center;">
            {greeting}
            <p>Merci de vous être abonné à notre newsletter !</p>
            <p>Pour confirmer votre abonnement et commencer à recevoir nos actualités, veuillez cliquer sur le bouton ci-dessous :</p>

            <a href="{verification_url}" style="display: inline-block; background: {s['btn_bg']}; color: {s['btn_text']}; text-decoration: none; padding: 12px 30px; border-radius: 6px; font-weight: 600; margin: 20px 0;">
                Confirmer mon abonnement
            </a>

            <p style="font-size: 14px; color: {s['text_secondary']}; margin-top: 25px;">
                Si vous n'avez pas demandé cet abonnement, vous pouvez ignorer cet email.
            </p>
        </div>

        <div style="background: {s['footer_bg']}; padding: 20px; text-align: center; font-size: 12px; color: {s['text_secondary']};">
            <p>{self.brand_tagline or self.brand_name}<br>Bédarieux, France</p>
        </div>
    </div>
</body>
</html>
        """

    # ==================== Test Email ====================

    def send_test_email(self, email: str, subject: Optional[str] = None,
                        html_body: Optional[str] = None) -> str:
        """Send an admin test message, either a given rendering or a transport check"""
        subject = subject or f"[TEST] {self.brand_name} - vérification de l'envoi"
        if html_body is None:
            s = self.style
            html_body = f"""
<!DOCTYPE html>
<html lang="fr">
<body style="font-family: {s['font']}; color: {s['text']}; padding: 20px;">
    <h2 style="color: {s['heading']};">Email de test</h2>
    <p>Cet email confirme que le service d'envoi ({self.provider}) de {self.brand_name} fonctionne.</p>
    <p style="font-size: 12px; color: {s['text_secondary']};">Envoyé le {datetime.now().strftime('%d/%m/%Y %H:%M')}</p>
</body>
</html>
            """
        return self.send_email(email, subject, html_body, email_type='test')


# Global instance, configured by Bedarieux.init_app()
email_service = EmailService()
