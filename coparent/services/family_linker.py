"""Family Graph Linker.

Turns a ``valid`` invitation into family state:

* co-parent: both profiles point at each other through ``co_parent_id``
* third-party: the caller gets an active ``FamilyMembership`` anchored at
  the family's primary parent

Every write is a conditional UPDATE keyed on the expected prior state, so a
concurrent acceptance or link loses cleanly instead of half-applying. All
writes share the caller's transaction; any raised error rolls them back
together. Side effects (notifications) are left to the caller and run
after commit.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.config import settings
from coparent.core.exceptions import (
    AlreadyConsumed,
    AlreadyLinked,
    Expired,
    IdentityMismatch,
    NotFound,
    NotPermitted,
)
from coparent.core.timeutils import as_utc, utcnow
from coparent.models.family import FamilyMembership
from coparent.models.invitation import Invitation
from coparent.models.profile import Profile
from coparent.schemas.profile import CallerIdentity
from coparent.services.family_service import get_family_parents, primary_parent_id_for
from coparent.services.invitation_service import effective_status, lookup_and_resolve, token_preview
from coparent.services.permission_service import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    PREMIUM_TIERS,
    effective_role,
)

logger = logging.getLogger(__name__)

_RESOLUTION_ERRORS = {
    "invalid": NotFound,
    "expired": Expired,
    "already_accepted": AlreadyConsumed,
    "email_mismatch": IdentityMismatch,
}


@dataclass
class LinkResult:
    """What an acceptance changed, plus data for post-commit notifications."""

    linked: str
    invitation_id: uuid.UUID
    co_parent_id: uuid.UUID | None = None
    primary_parent_id: uuid.UUID | None = None
    membership_id: uuid.UUID | None = None
    trial_ends_at: datetime | None = None
    relationship: str | None = None
    notify_parents: list[tuple[uuid.UUID, str | None]] = field(default_factory=list)


async def _claim_invitation(
    db: AsyncSession,
    invitation: Invitation,
    accepted_by: uuid.UUID,
    now: datetime,
) -> None:
    """Move pending -> accepted; only one caller can ever win this update."""
    result = await db.execute(
        update(Invitation)
        .where(
            Invitation.id == invitation.id,
            Invitation.status == "pending",
            Invitation.expires_at >= now,
        )
        .values(status="accepted", accepted_by=accepted_by, accepted_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.refresh(invitation)
        status = effective_status(invitation, now)
        logger.info("Invitation %s not claimed, now %s", invitation.id, status)
        if status in ("expired", "revoked"):
            raise Expired()
        raise AlreadyConsumed()


async def _set_co_parent(
    db: AsyncSession, profile_id: uuid.UUID, partner_id: uuid.UUID,
) -> None:
    result = await db.execute(
        update(Profile)
        .where(
            Profile.id == profile_id,
            or_(Profile.co_parent_id.is_(None), Profile.co_parent_id == partner_id),
        )
        .values(co_parent_id=partner_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyLinked("This account is already linked with another co-parent")


def _extended_trial(profile: Profile, now: datetime) -> datetime | None:
    """New trial end for a freshly linked co-parent, or None if not applicable."""
    paid = profile.free_premium_access or (
        profile.subscription_tier in PREMIUM_TIERS
        and profile.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES
    )
    if paid:
        return None
    target = now + timedelta(days=settings.TRIAL_DAYS)
    current = as_utc(profile.trial_ends_at)
    if current is not None and current >= target:
        return None
    return target


async def link_co_parents(
    db: AsyncSession,
    invitation: Invitation,
    acceptor: Profile,
    now: datetime | None = None,
) -> LinkResult:
    """Link ``acceptor`` and the inviter symmetrically and consume the invitation."""
    now = now or utcnow()
    if invitation.invitation_type != "co_parent":
        raise NotPermitted("This is not a co-parent invitation")
    if effective_role(acceptor) != "parent":
        raise NotPermitted("Only parent accounts can become co-parents")

    result = await db.execute(select(Profile).where(Profile.id == invitation.inviter_id))
    inviter = result.scalar_one_or_none()
    if inviter is None:
        raise NotFound("The person who invited you no longer has an account")

    if inviter.id == acceptor.id:
        raise AlreadyLinked("You cannot accept your own invitation")
    if acceptor.co_parent_id not in (None, inviter.id):
        raise AlreadyLinked("You are already linked with another co-parent")
    if inviter.co_parent_id not in (None, acceptor.id):
        raise AlreadyLinked("The inviting parent is already linked with another co-parent")

    await _claim_invitation(db, invitation, acceptor.id, now)
    await _set_co_parent(db, acceptor.id, inviter.id)
    await _set_co_parent(db, inviter.id, acceptor.id)

    # Both families now share one anchor
    anchor = primary_parent_id_for(acceptor.id, inviter.id)
    await db.execute(
        update(FamilyMembership)
        .where(FamilyMembership.primary_parent_id.in_([acceptor.id, inviter.id]))
        .values(primary_parent_id=anchor)
        .execution_options(synchronize_session=False)
    )

    trial_ends_at = _extended_trial(acceptor, now)
    if trial_ends_at is not None:
        await db.execute(
            update(Profile)
            .where(Profile.id == acceptor.id)
            .values(trial_ends_at=trial_ends_at)
            .execution_options(synchronize_session=False)
        )

    await db.flush()
    for obj in (invitation, acceptor, inviter):
        await db.refresh(obj)

    logger.info("Co-parents linked: %s <-> %s (invitation %s)", acceptor.id, inviter.id, invitation.id)
    return LinkResult(
        linked="co_parent",
        invitation_id=invitation.id,
        co_parent_id=inviter.id,
        primary_parent_id=anchor,
        trial_ends_at=as_utc(acceptor.trial_ends_at),
    )


async def attach_third_party(
    db: AsyncSession,
    invitation: Invitation,
    member: Profile,
    now: datetime | None = None,
) -> LinkResult:
    """Attach ``member`` to the inviter's family and consume the invitation."""
    now = now or utcnow()
    if invitation.invitation_type != "third_party":
        raise NotPermitted("This is not a third-party invitation")

    role = effective_role(member)
    if role == "child":
        raise NotPermitted("Child accounts cannot join a family as third-party members")
    if member.co_parent_id is not None:
        raise AlreadyLinked("Linked co-parents cannot join another family as third-party members")

    result = await db.execute(select(Profile).where(Profile.id == invitation.inviter_id))
    inviter = result.scalar_one_or_none()
    if inviter is None:
        raise NotFound("The person who invited you no longer has an account")
    if inviter.id == member.id:
        raise AlreadyLinked("You cannot accept your own invitation")

    anchor = primary_parent_id_for(inviter.id, inviter.co_parent_id)
    if member.id in (anchor, inviter.co_parent_id):
        raise AlreadyLinked("You are already a parent in this family")

    existing = await db.execute(
        select(FamilyMembership.id).where(
            FamilyMembership.member_id == member.id,
            FamilyMembership.status == "active",
        )
    )
    if existing.first() is not None:
        raise AlreadyLinked("You are already a member of a family")

    await _claim_invitation(db, invitation, member.id, now)

    membership = FamilyMembership(
        member_id=member.id,
        primary_parent_id=anchor,
        role="third_party",
        relationship=invitation.relationship,
        child_ids=invitation.child_ids,
        status="active",
        invited_by=inviter.id,
        invitation_id=invitation.id,
        accepted_at=now,
    )
    db.add(membership)
    member.account_role = "third_party"
    await db.flush()
    await db.refresh(invitation)

    parents = await get_family_parents(db, anchor)
    logger.info(
        "Third-party member %s joined family %s (invitation %s)",
        member.id, anchor, invitation.id,
    )
    return LinkResult(
        linked="third_party",
        invitation_id=invitation.id,
        primary_parent_id=anchor,
        membership_id=membership.id,
        relationship=invitation.relationship,
        notify_parents=[(p.id, p.email) for p in parents],
    )


async def accept_invitation(
    db: AsyncSession,
    token: str,
    caller: Profile,
    identity: CallerIdentity,
    now: datetime | None = None,
) -> LinkResult:
    """Resolve ``token`` for the caller and, if valid, apply the link.

    Raises the terminal error matching any non-valid resolution; a token
    that was already consumed never reaches the linking step.
    """
    now = now or utcnow()
    resolution, invitation = await lookup_and_resolve(db, token, identity, now)
    if resolution.status != "valid":
        logger.info("Acceptance of %s refused: %s", token_preview(token), resolution.status)
        raise _RESOLUTION_ERRORS[resolution.status]()

    if invitation.invitation_type == "co_parent":
        return await link_co_parents(db, invitation, caller, now)
    return await attach_third_party(db, invitation, caller, now)
