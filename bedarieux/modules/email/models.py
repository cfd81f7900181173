from ...core.database import db, utcnow, isoformat


class EmailLog(db.Model):
    """One row per send attempt, whatever the provider answered"""
    __tablename__ = 'email_logs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    recipient = db.Column(db.String(320), nullable=False, index=True)
    subject = db.Column(db.String(300), nullable=False)
    email_type = db.Column(db.String(50))
    provider = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False)
    message_id = db.Column(db.String(200))
    error_message = db.Column(db.Text)
    sent_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'recipient': self.recipient,
            'subject': self.subject,
            'emailType': self.email_type,
            'provider': self.provider,
            'status': self.status,
            'messageId': self.message_id,
            'errorMessage': self.error_message,
            'sentAt': isoformat(self.sent_at),
        }
