"""Email delivery.

Sends transactional email through a Resend-compatible HTTP API. Delivery
is best-effort: the public helpers return ``False`` and log on failure,
they never raise into the request that triggered them.
"""

import html
import logging

import httpx

from coparent.config import settings
from coparent.core.exceptions import TransientDeliveryFailure

logger = logging.getLogger(__name__)

RELATIONSHIP_LABELS = {
    "step_parent": "Step-Parent",
    "grandparent": "Grandparent",
    "aunt_uncle": "Aunt/Uncle",
    "sibling": "Sibling",
    "babysitter": "Babysitter/Nanny",
    "family_friend": "Family Friend",
    "therapist": "Therapist/Counselor",
    "other": "Other",
}


def build_invite_url(token: str) -> str:
    """Shareable acceptance link. Also the fallback when email delivery fails."""
    return f"{settings.APP_BASE_URL.rstrip('/')}/accept-invite?token={token}"


async def send_email(to: list[str], subject: str, body_html: str) -> str | None:
    """Post one message to the email API and return its message id.

    Raises:
        TransientDeliveryFailure: If delivery is not configured, the API is
            unreachable, or it answers with an error status.
    """
    if not settings.RESEND_API_KEY:
        raise TransientDeliveryFailure("Email delivery is not configured")

    try:
        async with httpx.AsyncClient(timeout=settings.EMAIL_TIMEOUT_SECONDS) as client:
            response = await client.post(
                settings.EMAIL_API_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={
                    "from": settings.EMAIL_FROM,
                    "to": to,
                    "subject": subject,
                    "html": body_html,
                },
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise TransientDeliveryFailure(str(e)) from e

    return response.json().get("id")


def _invitation_body(inviter_name: str, invite_url: str, invitation_type: str, relationship: str | None) -> str:
    name = html.escape(inviter_name)
    if invitation_type == "co_parent":
        intro = (
            f"<p><strong>{name}</strong> has invited you to co-parent together. "
            "Once you accept, you will share the family calendar, messages and "
            f"documents, and your {settings.TRIAL_DAYS}-day free trial starts.</p>"
        )
    else:
        label = RELATIONSHIP_LABELS.get(relationship or "", "family member")
        intro = (
            f"<p><strong>{name}</strong> has invited you to join their family as a "
            f"{html.escape(label)}. You will be able to read the family calendar "
            "and take part in family messaging.</p>"
        )
    return (
        f"{intro}"
        f'<p><a href="{html.escape(invite_url)}">Accept invitation</a></p>'
        f"<p>This invitation expires in {settings.INVITATION_TTL_DAYS} days. "
        "If you did not expect it, you can ignore this email.</p>"
    )


async def send_invitation_email(
    invitee_email: str,
    inviter_name: str,
    token: str,
    invitation_type: str,
    relationship: str | None = None,
) -> bool:
    """Deliver an invitation link. Returns whether delivery succeeded."""
    if invitation_type == "co_parent":
        subject = f"{inviter_name} invited you to co-parent"
    else:
        subject = f"{inviter_name} invited you to join their family"

    try:
        message_id = await send_email(
            [invitee_email],
            subject,
            _invitation_body(inviter_name, build_invite_url(token), invitation_type, relationship),
        )
    except TransientDeliveryFailure as e:
        logger.warning("Invitation email to %s not delivered: %s", invitee_email, e)
        return False

    logger.info("Invitation email sent to %s (message %s)", invitee_email, message_id)
    return True
