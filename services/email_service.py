"""
Email Service - transactional mail via Resend
"""

import asyncio
import logging

import resend

from config.settings import settings

logger = logging.getLogger(__name__)

if not settings.resend_api_key:
    logger.warning("RESEND_API_KEY is not set. Verification emails will not be delivered.")


def _send(to: str, subject: str, html: str) -> None:
    resend.api_key = settings.resend_api_key
    resend.Emails.send({
        "from": settings.from_email,
        "to": to,
        "subject": subject,
        "html": html,
    })


async def send_verification_email(email: str, code: str) -> bool:
    """
    Send the 6-digit verification code.

    Delivery failures are logged and reported as False; they never fail
    registration.
    """
    if not settings.resend_api_key:
        logger.warning(f"Skipping verification email to {email}: RESEND_API_KEY not configured")
        return False

    html = (
        "<p>Your email verification code is:</p>"
        f"<h2>{code}</h2>"
        f"<p>This code is valid for {settings.verification_code_minutes} minutes.</p>"
    )
    try:
        await asyncio.to_thread(_send, email, "Assignly: Email Verification Code", html)
    except Exception as e:
        logger.error(f"Failed to send verification email to {email}: {e}")
        return False

    logger.info(f"Verification email sent to {email}")
    return True
