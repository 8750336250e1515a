"""Notification dispatch.

Fire-and-forget delivery of family events to profiles, pushed over the
portal WebSocket and, for parents, by email. Runs after the state change
it reports has been committed; failures are logged and swallowed.
"""

import html
import logging
import uuid

from coparent.core.exceptions import TransientDeliveryFailure
from coparent.services.connection_manager import connection_manager
from coparent.services.email_service import RELATIONSHIP_LABELS, send_email

logger = logging.getLogger(__name__)


async def dispatch(profile_id: uuid.UUID, payload: dict) -> bool:
    """Push an event to a profile's open portals. Returns whether anyone received it."""
    try:
        delivered = await connection_manager.send_to_profile(profile_id, payload)
    except Exception:
        logger.exception("Notification dispatch to profile %s failed", profile_id)
        return False
    return delivered > 0


async def notify_third_party_added(
    parents: list[tuple[uuid.UUID, str | None]],
    member_name: str,
    member_email: str,
    relationship: str | None,
) -> int:
    """Tell the family parents that a third-party member joined.

    ``parents`` holds ``(profile_id, email)`` pairs. Returns how many
    parents were reached on at least one channel.
    """
    label = RELATIONSHIP_LABELS.get(relationship or "", "family member")
    payload = {
        "type": "family.third_party_added",
        "member_name": member_name,
        "member_email": member_email,
        "relationship": relationship,
    }

    reached = 0
    for profile_id, email in parents:
        pushed = await dispatch(profile_id, payload)
        emailed = False
        if email:
            try:
                await send_email(
                    [email],
                    f"{member_name} joined your family",
                    f"<p><strong>{html.escape(member_name)}</strong> ({html.escape(member_email)}) "
                    f"accepted your invitation and joined your family as a {html.escape(label)}.</p>",
                )
                emailed = True
            except TransientDeliveryFailure as e:
                logger.warning("Third-party notice to parent %s not emailed: %s", profile_id, e)
            except Exception:
                logger.exception("Third-party notice to parent %s failed", profile_id)
        if pushed or emailed:
            reached += 1

    logger.info("Third-party added: %d of %d parents notified", reached, len(parents))
    return reached


async def notify_co_parent_linked(
    inviter_id: uuid.UUID,
    co_parent_id: uuid.UUID,
    co_parent_name: str,
) -> bool:
    """Tell the inviting parent their co-parent accepted. Portal push only."""
    payload = {
        "type": "family.co_parent_linked",
        "co_parent_id": str(co_parent_id),
        "co_parent_name": co_parent_name,
    }
    pushed = await dispatch(inviter_id, payload)
    logger.info("Co-parent link notice for %s %s", inviter_id, "pushed" if pushed else "not delivered")
    return pushed
