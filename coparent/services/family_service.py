"""Family Service.

Read side of the family graph: the canonical family anchor, the parent
profiles of a family, and its third-party members. All relationships are
resolved through id lookups, never through cached object graphs.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.exceptions import NotFound, NotPermitted
from coparent.core.timeutils import utcnow
from coparent.models.family import FamilyMembership
from coparent.models.invitation import Invitation
from coparent.models.profile import ChildPermission, Profile
from coparent.services.permission_service import effective_role, get_active_membership

logger = logging.getLogger(__name__)


def primary_parent_id_for(
    profile_id: uuid.UUID, co_parent_id: uuid.UUID | None,
) -> uuid.UUID:
    """Family anchor: the smaller of a parent's id and their co-parent's id.

    Symmetric by construction, so both co-parents resolve to the same anchor.
    """
    if co_parent_id is None:
        return profile_id
    return min(profile_id, co_parent_id)


async def resolve_primary_parent(db: AsyncSession, parent_id: uuid.UUID) -> uuid.UUID:
    """Look up a parent by id and return its family anchor."""
    result = await db.execute(select(Profile.co_parent_id).where(Profile.id == parent_id))
    row = result.one_or_none()
    if row is None:
        raise NotFound("Profile not found", code="not_found")
    return primary_parent_id_for(parent_id, row.co_parent_id)


async def get_family_parents(db: AsyncSession, primary_parent_id: uuid.UUID) -> list[Profile]:
    """Return the anchor profile and, if linked, its co-parent."""
    result = await db.execute(select(Profile).where(Profile.id == primary_parent_id))
    anchor = result.scalar_one_or_none()
    if anchor is None:
        return []
    parents = [anchor]
    if anchor.co_parent_id is not None:
        result = await db.execute(select(Profile).where(Profile.id == anchor.co_parent_id))
        co_parent = result.scalar_one_or_none()
        if co_parent is not None:
            parents.append(co_parent)
    return parents


async def list_members(
    db: AsyncSession,
    primary_parent_id: uuid.UUID,
    include_revoked: bool = False,
) -> list[FamilyMembership]:
    query = select(FamilyMembership).where(
        FamilyMembership.primary_parent_id == primary_parent_id,
        FamilyMembership.role == "third_party",
    )
    if not include_revoked:
        query = query.where(FamilyMembership.status == "active")
    result = await db.execute(query.order_by(FamilyMembership.accepted_at))
    return list(result.scalars().all())


async def count_third_party_slots_used(
    db: AsyncSession,
    primary_parent_id: uuid.UUID,
    parent_ids: list[uuid.UUID],
    now: datetime | None = None,
) -> int:
    """Active members plus pending, unexpired third-party invitations."""
    now = now or utcnow()
    members = await db.execute(
        select(func.count(FamilyMembership.id)).where(
            FamilyMembership.primary_parent_id == primary_parent_id,
            FamilyMembership.status == "active",
        )
    )
    pending = await db.execute(
        select(func.count(Invitation.id)).where(
            Invitation.inviter_id.in_(parent_ids),
            Invitation.invitation_type == "third_party",
            Invitation.status == "pending",
            Invitation.expires_at > now,
        )
    )
    return (members.scalar() or 0) + (pending.scalar() or 0)


async def get_family_anchor_for(db: AsyncSession, profile: Profile) -> uuid.UUID:
    """Anchor of the family a profile belongs to, whatever its role."""
    role = effective_role(profile)
    if role == "parent":
        return primary_parent_id_for(profile.id, profile.co_parent_id)
    if role == "third_party":
        membership = await get_active_membership(db, profile.id)
        if membership is None:
            raise NotPermitted("You are no longer a member of this family")
        return membership.primary_parent_id
    raise NotPermitted("Child accounts cannot view family membership")


async def revoke_membership(
    db: AsyncSession,
    parent: Profile,
    membership_id: uuid.UUID,
    now: datetime | None = None,
) -> FamilyMembership:
    """Remove a third-party member. Only parents of that family may do this."""
    now = now or utcnow()
    result = await db.execute(
        select(FamilyMembership).where(FamilyMembership.id == membership_id)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise NotFound("Family member not found", code="not_found")

    if effective_role(parent) != "parent" or membership.primary_parent_id != primary_parent_id_for(
        parent.id, parent.co_parent_id
    ):
        raise NotPermitted("Only parents of this family can remove members")

    if membership.status == "revoked":
        return membership

    await db.execute(
        update(FamilyMembership)
        .where(FamilyMembership.id == membership.id, FamilyMembership.status == "active")
        .values(status="revoked", revoked_at=now)
        .execution_options(synchronize_session="fetch")
    )
    # The third-party role only lasts as long as an active membership
    await db.execute(
        update(Profile)
        .where(Profile.id == membership.member_id, Profile.account_role == "third_party")
        .values(account_role="parent")
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    await db.refresh(membership)
    logger.info("Membership %s revoked by %s", membership.id, parent.id)
    return membership


async def can_view_profile(db: AsyncSession, viewer: Profile, target: Profile) -> bool:
    """Whether ``viewer`` may inspect ``target``: itself, or a parent of target's family."""
    if viewer.id == target.id:
        return True
    if effective_role(viewer) != "parent":
        return False

    role = effective_role(target)
    if role == "parent":
        return viewer.co_parent_id == target.id
    if role == "child":
        result = await db.execute(
            select(ChildPermission.parent_profile_id).where(
                ChildPermission.child_profile_id == target.id
            )
        )
        owner_id = result.scalar_one_or_none()
        return owner_id is not None and owner_id in (viewer.id, viewer.co_parent_id)

    membership = await get_active_membership(db, target.id)
    return membership is not None and membership.primary_parent_id == primary_parent_id_for(
        viewer.id, viewer.co_parent_id
    )
