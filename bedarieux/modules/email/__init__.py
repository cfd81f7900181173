"""
Email Module
============

Provides email sending through SMTP, the Resend API or a console transport
for development, plus the subscription verification and test emails.
"""

from .email_service import EmailService, email_service

__all__ = ['EmailService', 'email_service']
