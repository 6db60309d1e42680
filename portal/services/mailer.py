"""
Mailer

Renders transactional email from the translation catalogue, records
each one in sent_emails inside the caller's transaction, and delivers it
over SMTP.

Delivery is handed to FastAPI background tasks when available, so it
only happens once the request (and its transaction) has succeeded.
Delivery failures are logged; they never fail the request that caused
the email.
"""
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Any, Dict, Optional
import smtplib

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.core.constants import EmailType, DEFAULT_LANGUAGE, language_code
from portal.core.i18n import t
from portal.models.sent_email import SentEmail
from portal.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

TEMPLATES = {
    EmailType.CLIENT_WELCOME: "email.clientWelcome",
    EmailType.RESEND_VERIFY_EMAIL: "email.resendVerifyEmail",
    EmailType.FORGOT_PASSWORD: "email.forgotPassword",
    EmailType.FORGOT_ACCOUNT_DETAILS: "email.forgotAccountDetails",
    EmailType.RESET_PASSWORD_SUCCESS: "email.resetPasswordSuccess",
}


def recently_sent(db: Session, email_type: int, within_minutes: int, **filters) -> bool:
    """
    True if an email of email_type matching filters was sent in the window.

    filters are SentEmail column names, e.g. to_address=... or
    client_id=..., user_id=....
    """
    now = datetime.utcnow()
    query = db.query(SentEmail).filter(
        SentEmail.email_type == email_type,
        SentEmail.created_at >= now - timedelta(minutes=within_minutes),
        SentEmail.created_at <= now,
    )
    for column, value in filters.items():
        query = query.filter(getattr(SentEmail, column) == value)
    return query.first() is not None


class Mailer:
    """Sends one transactional email per send_email() call."""

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None):
        self.background_tasks = background_tasks

    def render(self, email_type: int, lng: str, params: Dict[str, Any]):
        prefix = TEMPLATES[email_type]
        values = dict(params)
        if "accounts" in values:
            values["accounts"] = "\n".join(
                t(f"{prefix}.account", lng, **account) for account in values["accounts"]
            )
        subject = t(f"{prefix}.subject", lng, **values)
        body = t(f"{prefix}.body", lng, **values)
        return subject, body

    def send_email(
        self,
        db: Session,
        email_type: int,
        language: Optional[int],
        to_address: str,
        params: Dict[str, Any],
        client_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> SentEmail:
        lng = language_code(language) or DEFAULT_LANGUAGE
        subject, body = self.render(email_type, lng, params)

        record = SentEmail(
            to_address=to_address,
            email_type=email_type,
            subject=subject,
            client_id=client_id,
            user_id=user_id,
        )
        db.add(record)

        message = EmailMessage()
        message["From"] = settings.MAIL_FROM
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)

        if self.background_tasks is not None:
            self.background_tasks.add_task(self.deliver, message)
        else:
            self.deliver(message)

        return record

    def deliver(self, message: EmailMessage) -> None:
        if not settings.MAIL_ENABLED:
            logger.info(f"Mail disabled, not sending '{message['Subject']}' to {message['To']}")
            return

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
                if settings.SMTP_USE_TLS:
                    smtp.starttls()
                if settings.SMTP_USERNAME:
                    smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                smtp.send_message(message)
            logger.info(f"Sent '{message['Subject']}' to {message['To']}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to deliver email to {message['To']}: {e}", exc_info=True)
