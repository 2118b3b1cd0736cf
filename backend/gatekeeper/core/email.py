"""Email delivery via Resend API.

One plain-text message per notification kind. Each message carries a link
to the front end with the raw one-time token as the ``token`` query
parameter.

``send_notification`` raises on failure. Request handlers never call it
directly: they schedule ``deliver_notification`` as a background task after
committing, and that wrapper routes delivery failures to the audit sink.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import quote, urlencode

import httpx

from gatekeeper.core.audit import log_error
from gatekeeper.core.config import Settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class NotificationKind(StrEnum):
    """Outbound message types, one per token purpose."""

    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"
    CHANGE_EMAIL = "change_email"


# Front-end path, subject and body lead-in per kind
_TEMPLATES: dict[NotificationKind, tuple[str, str, str]] = {
    NotificationKind.VERIFY_EMAIL: (
        "/auth/verify",
        "Verify your email",
        "Confirm your email address by opening this link:",
    ),
    NotificationKind.RESET_PASSWORD: (
        "/auth/reset",
        "Reset Password",
        "Choose a new password by opening this link (valid for 24 hours):",
    ),
    NotificationKind.CHANGE_EMAIL: (
        "/auth/change-email",
        "Change Email",
        "Confirm your new email address by opening this link (valid for 24 hours):",
    ),
}


def build_link(settings: Settings, kind: NotificationKind, raw_token: str) -> str:
    """Build the front-end link that carries a one-time token.

    Args:
        settings: Application settings (front-end base URL).
        kind: Notification kind, selects the path.
        raw_token: Raw token to embed.

    Returns:
        Absolute URL such as ``https://app.example.com/auth/reset?token=...``.
    """
    path = _TEMPLATES[kind][0]
    params = urlencode({"token": raw_token}, quote_via=quote)
    return f"{settings.frontend_url}{path}?{params}"


async def send_notification(
    settings: Settings, kind: NotificationKind, address: str, link: str
) -> None:
    """Send one notification email.

    Args:
        settings: Application settings (sender, API key, app name).
        kind: Notification kind.
        address: Recipient email address.
        link: Link built by ``build_link``.

    Raises:
        httpx.HTTPError: If the request fails or Resend answers non-2xx.
    """
    _, subject, lead = _TEMPLATES[kind]
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            _RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
            },
            json={
                "from": f"{settings.app_name} <{settings.email_from}>",
                "to": address,
                "subject": subject,
                "text": (
                    f"{lead}\n\n{link}\n\n"
                    "If you didn't request this, you can safely ignore this email."
                ),
            },
            timeout=_RESEND_TIMEOUT,
        )
        resp.raise_for_status()


@dataclass(frozen=True)
class Notification:
    """A message to send once the triggering change has committed.

    Attributes:
        kind: Notification kind.
        address: Recipient email address.
        link: Link built by ``build_link``.
        user_id: Account the notification belongs to.
    """

    kind: NotificationKind
    address: str
    link: str
    user_id: int = 0


async def deliver_notification(
    settings: Settings, notification: Notification
) -> None:
    """Background-task entry point for notification delivery.

    Runs after the response has been sent. A failure cannot change the
    response, so it is recorded to the audit sink instead.

    Args:
        settings: Application settings.
        notification: Message to send.
    """
    try:
        await send_notification(
            settings, notification.kind, notification.address, notification.link
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to send %s email", notification.kind)
        await log_error(
            "email.send",
            "Notification delivery failed",
            exc,
            {"kind": str(notification.kind)},
            notification.user_id,
        )
