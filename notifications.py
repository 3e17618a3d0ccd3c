"""
Outbound email. Delivery goes through Resend when RESEND_API_KEY is set;
otherwise the message is only logged.
"""
import logging
from typing import Optional

import resend

import config

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Your files from Seratus Studio"


def render_download_email(download_link: Optional[str]) -> str:
    body = [
        "<p>Hello,</p>",
        "<p>Thank you for your purchase. Your files are ready.</p>",
    ]
    if download_link:
        body.append(f'<p><a href="{download_link}">Download your files</a></p>')
        body.append(f"<p>The link stays valid for {config.DOWNLOAD_WINDOW_DAYS} days.</p>")
    body.append("<p>Seratus Studio</p>")
    return "\n".join(body)


def send_download_email(to: str, download_link: Optional[str] = None, subject: Optional[str] = None) -> bool:
    """Send the delivery email. Never raises; returns whether it was handed to the provider."""
    subject = subject or DEFAULT_SUBJECT
    if not config.RESEND_API_KEY:
        logger.info(f"Email delivery not configured, skipping '{subject}' to {to} (link: {download_link})")
        return False

    resend.api_key = config.RESEND_API_KEY
    try:
        resend.Emails.send(
            {
                "from": config.EMAIL_FROM,
                "to": [to],
                "subject": subject,
                "html": render_download_email(download_link),
            }
        )
    except Exception:
        logger.exception(f"Failed to send '{subject}' to {to}")
        return False
    logger.info(f"Sent '{subject}' to {to}")
    return True
