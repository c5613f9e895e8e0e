"""
Email notification for new form submissions.

The transcript has one ``label: value`` line per field of the form, in form
order. Values missing from the submission render as an empty string.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Iterable, Mapping

from config import settings
from errors import NotificationError

logger = logging.getLogger(__name__)


def _field_attr(field, name):
    if isinstance(field, Mapping):
        return field.get(name)
    return getattr(field, name, None)


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(v) for v in value)
    return str(value)


def format_transcript(fields: Iterable, data: Mapping[str, Any]) -> str:
    lines = []
    for field in fields:
        value = data.get(_field_attr(field, "id"))
        lines.append(f"{_field_attr(field, 'label')}: {format_value(value)}")
    return "\n".join(lines)


def build_message(form_title: str, transcript: str) -> EmailMessage:
    msg = EmailMessage()
    # header values must be a single line
    msg["Subject"] = " ".join(form_title.splitlines())
    msg["From"] = settings.MAIL_FROM
    msg["To"] = settings.MAIL_TO
    msg.set_content(f'A new submission was received for the form "{form_title}":\n\n{transcript}')
    return msg


def deliver(msg: EmailMessage) -> None:
    host = settings.SMTP_HOST
    port = settings.SMTP_PORT
    timeout = settings.MAIL_TIMEOUT_SECONDS
    context = ssl.create_default_context()
    if port == 465:
        with smtplib.SMTP_SSL(host, port, context=context, timeout=timeout) as server:
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)
        return

    with smtplib.SMTP(host, port, timeout=timeout) as server:
        server.ehlo()
        if server.has_extn("starttls"):
            server.starttls(context=context)
            server.ehlo()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)


def send_submission_email(form_title: str, data: Mapping[str, Any], fields: Iterable) -> str:
    """Send the transcript for one submission. Returns the transcript.

    No retry: any transport failure is raised as ``NotificationError``.
    """
    transcript = format_transcript(fields, data)
    if not settings.smtp_enabled:
        logger.warning("SMTP_HOST is not set; not sending notification for '%s'", form_title)
        return transcript

    msg = build_message(form_title, transcript)
    try:
        deliver(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Failed to send notification for '%s'", form_title)
        raise NotificationError(f"Failed to send notification: {e}") from e
    logger.info("Notification sent for '%s' to %s", form_title, settings.MAIL_TO)
    return transcript
