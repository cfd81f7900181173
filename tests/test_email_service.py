"""
Email service: provider configuration, transports and the email_logs trail.
"""

import smtplib
from unittest.mock import patch

import pytest
import requests
import resend
from resend.exceptions import ResendError

from bedarieux.core.database import db
from bedarieux.core.errors import MailTransportError
from bedarieux.modules.email.email_service import EmailService, html_to_text
from bedarieux.modules.email.models import EmailLog


def _service(app, **config):
    app.config.update(config)
    svc = EmailService()
    with app.app_context():
        svc.init_app(app)
    return svc


def _logs(app):
    with app.app_context():
        return [log.to_dict() for log in db.session.query(EmailLog).order_by(EmailLog.id).all()]


def test_init_resend(app):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_test_fake_key_123",
                   EMAIL_BRAND_NAME="TestBrand")

    assert svc.provider == "resend"
    assert svc.brand_name == "TestBrand"
    assert svc.api_key == "re_test_fake_key_123"


def test_unknown_provider_falls_back_to_console(app):
    svc = _service(app, EMAIL_PROVIDER="carrier-pigeon")
    assert svc.provider == "console"


def test_html_to_text():
    html = "<style>p{color:red}</style><p>Bonjour<br>Anne</p>\n\n\n<p>Fin</p>"
    assert html_to_text(html) == "Bonjour\nAnne\n\nFin"


def test_console_send_returns_dev_id_and_logs(app):
    svc = _service(app, EMAIL_PROVIDER="console")

    with app.app_context():
        message_id = svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>", email_type="test")

    assert message_id.startswith("dev-")
    logs = _logs(app)
    assert logs[-1]["recipient"] == "anne@x.com"
    assert logs[-1]["status"] == "sent"
    assert logs[-1]["messageId"] == message_id
    assert logs[-1]["emailType"] == "test"


def test_invalid_recipient_raises_and_logs_failure(app):
    svc = _service(app, EMAIL_PROVIDER="console")

    with app.app_context():
        with pytest.raises(MailTransportError):
            svc.send_email("not..valid@x", "Sujet", "<p>Bonjour</p>")

    assert _logs(app)[-1]["status"] == "failed"


def test_resend_send(app):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_key",
                   EMAIL_ADDRESS="noreply@abc-bedarieux.fr", EMAIL_FROM_NAME="ABC")

    with app.app_context():
        with patch.object(resend.Emails, "send", return_value={"id": "re-123"}) as send:
            message_id = svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")

    assert message_id == "re-123"
    assert resend.api_key == "re_key"
    params = send.call_args.args[0]
    assert params["to"] == ["anne@x.com"]
    assert params["from"] == "ABC <noreply@abc-bedarieux.fr>"
    assert params["text"] == "Bonjour"
    assert _logs(app)[-1]["messageId"] == "re-123"


class _Rejected(ResendError):
    def __init__(self, message):
        Exception.__init__(self, message)


def test_resend_api_error_raises(app):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_key")

    with app.app_context():
        with patch.object(resend.Emails, "send", side_effect=_Rejected("invalid from")):
            with pytest.raises(MailTransportError, match="invalid from"):
                svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")

    assert _logs(app)[-1]["status"] == "failed"


@pytest.mark.parametrize("error", [requests.ConnectionError("down"), RuntimeError("Request failed: down")])
def test_resend_network_error_raises(app, error):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_key")

    with app.app_context():
        with patch.object(resend.Emails, "send", side_effect=error):
            with pytest.raises(MailTransportError):
                svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")


def test_resend_response_without_id_raises(app):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_key")

    with app.app_context():
        with patch.object(resend.Emails, "send", return_value={}):
            with pytest.raises(MailTransportError, match="without message id"):
                svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")


def test_resend_without_key_raises(app):
    svc = _service(app, EMAIL_PROVIDER="resend", RESEND_API_KEY=None)

    with app.app_context():
        with pytest.raises(MailTransportError, match="not configured"):
            svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")


def test_smtp_send(app):
    svc = _service(app, EMAIL_PROVIDER="smtp", EMAIL_HOST="smtp.example.com", EMAIL_PORT=587,
                   EMAIL_USERNAME="user", EMAIL_PASSWORD="secret", EMAIL_USE_TLS=True)

    with app.app_context():
        with patch("bedarieux.modules.email.email_service.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            message_id = svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")

    smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("user", "secret")
    server.send_message.assert_called_once()
    assert message_id.startswith("<") and message_id.endswith(">")


def test_smtp_failure_raises(app):
    svc = _service(app, EMAIL_PROVIDER="smtp", EMAIL_HOST="smtp.example.com")

    with app.app_context():
        with patch("bedarieux.modules.email.email_service.smtplib.SMTP",
                   side_effect=smtplib.SMTPConnectError(421, "busy")):
            with pytest.raises(MailTransportError, match="SMTP error"):
                svc.send_email("anne@x.com", "Sujet", "<p>Bonjour</p>")


def test_verification_email(app):
    svc = _service(app, EMAIL_PROVIDER="console")

    with patch.object(svc, "send_email", return_value="dev-1") as send:
        svc.send_verification_email("anne@x.com", "https://abc-bedarieux.fr/api/newsletter/verify?token=abc",
                                    first_name="Anne")

    to, subject, html_body, text_body = send.call_args[0]
    assert to == "anne@x.com"
    assert subject.startswith("Confirmez votre abonnement")
    assert "verify?token=abc" in html_body
    assert "Bonjour Anne," in text_body
    assert send.call_args.kwargs["email_type"] == "verification"
