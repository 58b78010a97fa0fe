# notification dispatcher: emails invitation codes through the sendgrid v3 api
# best-effort: failures are logged and reported as False, never raised

import logging
from typing import Optional

import httpx

from app.services.config_resolver import SendGridConfig

logger = logging.getLogger(__name__)

INVITATION_SUBJECT = "Your Unique Therapii Connection Code"


def render_invitation_email(first_name: str, code: str) -> str:
    return f"""Hello {first_name},

Welcome to Therapii. We're glad to be part of your journey toward better mental well-being.

To connect securely with your therapist in the app, please use the one-time connection code below:

Your Code: {code}

Here's how to use it:

1. Open the Therapii mobile app.
2. Tap "Connect with Therapist."
3. Enter the 5-digit code shown above.

Once you submit the code, your account will be linked directly to your therapist, allowing you to securely exchange messages, schedule sessions, and share updates.

If you did not request this code, please ignore this email or contact us at support@therapii.com.

Warm regards,
The Therapii Team"""


def _sendgrid_errors(resp: httpx.Response) -> str:
    """join sendgrid's errors[].message list, falling back to the raw body"""
    try:
        errors = resp.json().get("errors") or []
        messages = [e.get("message", "") for e in errors if isinstance(e, dict)]
        if messages:
            return " | ".join(messages)
    except ValueError:
        pass
    return resp.text


async def send_invitation_email(
    to_email: str,
    code: str,
    first_name: str,
    config: SendGridConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """send the connection code. returns True only when sendgrid accepted it."""
    if not config.enabled:
        logger.info("SendGrid not configured in admin settings; skipping email delivery.")
        return False

    sender = config.from_email.strip()
    if not sender:
        logger.warning("SendGrid configured without a from_email; skipping email delivery.")
        return False

    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": sender},
        "subject": INVITATION_SUBJECT,
        "content": [{"type": "text/plain", "value": render_invitation_email(first_name, code)}],
    }

    try:
        async with httpx.AsyncClient(timeout=config.timeout, transport=transport) as client:
            resp = await client.post(
                f"{config.base_url}/v3/mail/send",
                headers={
                    "Authorization": f"Bearer {config.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        if resp.status_code >= 400:
            logger.error(
                f"SendGrid rejected email to {to_email} (status {resp.status_code}): {_sendgrid_errors(resp)}"
            )
            return False
    except Exception as e:
        # the invitation already exists; the therapist can still share the code by hand
        logger.error(f"Failed to send email via SendGrid to {to_email}: {e!r}")
        return False

    logger.info(f"Email sent successfully to {to_email} (from: {sender})")
    return True
