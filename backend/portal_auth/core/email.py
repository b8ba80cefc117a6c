"""Email sending via Resend API.

Simple HTTP POST to Resend for verification codes and platform links
(magic link, password recovery, account invitation).

Codes are delivered synchronously so the issue endpoint can report a
delivery failure. Links are sent from background tasks and failures are
only logged.
"""

import html
import logging

import httpx

from portal_auth.core.config import settings
from portal_auth.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

_LINK_SUBJECTS = {
    "magiclink": "Your sign-in link",
    "recovery": "Reset your password",
    "invite": "You have been invited to the client portal",
}

_LINK_INTROS = {
    "magiclink": "Click this link to sign in:",
    "recovery": "Click this link to choose a new password:",
    "invite": "Your client portal account is ready. Click this link to set your password:",
}


async def _post_email(payload: dict) -> None:
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            _RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
            },
            json={"from": settings.email_from, **payload},
            timeout=_RESEND_TIMEOUT,
        )
        resp.raise_for_status()


def _code_email_html(code: str, ttl_minutes: int, display_name: str | None) -> str:
    greeting = (
        f'<p style="margin:0 0 24px 0;color:#6b7280;">Hi {html.escape(display_name)}!</p>'
        if display_name
        else ""
    )
    return (
        '<div style="font-family:Segoe UI,Tahoma,sans-serif;max-width:500px;margin:0 auto;">'
        '<h1 style="font-size:24px;color:#1a1a2e;">Verification code</h1>'
        f"{greeting}"
        "<p>Here is your verification code. Enter it in the app to continue.</p>"
        '<div style="font-size:36px;font-weight:700;letter-spacing:8px;'
        f'color:#6366f1;font-family:Courier New,monospace;">{code}</div>'
        f"<p>The code is valid for <strong>{ttl_minutes} minutes</strong>.</p>"
        '<p style="font-size:12px;color:#9ca3af;">If you did not request this code '
        "you can ignore this email. Never share this code with anyone.</p>"
        "</div>"
    )


async def send_verification_code_email(
    *, to_email: str, code: str, display_name: str | None = None
) -> None:
    """Send a one-time verification code via Resend.

    Args:
        to_email: Recipient email address.
        code: The 6-digit code.
        display_name: Optional name used in the greeting.

    Raises:
        EmailDeliveryError: Resend rejected the request or was unreachable.
    """
    ttl = settings.verification_code_ttl_minutes
    greeting = f"Hi {display_name}!\n\n" if display_name else ""
    try:
        await _post_email(
            {
                "to": to_email,
                "subject": f"Your verification code: {code}",
                "html": _code_email_html(code, ttl, display_name),
                "text": (
                    f"{greeting}Your verification code is {code}\n\n"
                    f"The code is valid for {ttl} minutes. "
                    "If you didn't request this, you can safely ignore this email."
                ),
            }
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to send verification code email", exc_info=True)
        raise EmailDeliveryError() from exc


async def send_auth_link_email(
    *, to_email: str, link: str, purpose: str, name: str | None = None
) -> None:
    """Send a magic link, recovery or invitation email via Resend.

    Args:
        to_email: Recipient email address.
        link: Action link pointing at the backend verify endpoint.
        purpose: ``"magiclink"``, ``"recovery"`` or ``"invite"``.
        name: Optional recipient name for the greeting.
    """
    greeting = f"Hi {name},\n\n" if name else ""
    try:
        await _post_email(
            {
                "to": to_email,
                "subject": _LINK_SUBJECTS.get(purpose, _LINK_SUBJECTS["magiclink"]),
                "text": (
                    f"{greeting}{_LINK_INTROS.get(purpose, _LINK_INTROS['magiclink'])}"
                    f"\n\n{link}\n\n"
                    "If you didn't request this, you can safely ignore this email."
                ),
            }
        )
    except httpx.HTTPError:
        logger.warning("Failed to send %s email", purpose, exc_info=True)
