"""Permission Service.

Single source of truth for what a profile may see or do. Every router
gates on the ``Capabilities`` returned here instead of inspecting raw
account roles.

``resolve_capabilities`` is pure: it takes already-loaded rows and the
current time. ``get_capabilities`` loads those rows by id lookup, so a new
co-parent link or membership is reflected on the very next read.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.config import settings
from coparent.core.exceptions import NotFound, NotPermitted
from coparent.core.timeutils import as_utc, utcnow
from coparent.models.family import FamilyMembership
from coparent.models.profile import ChildPermission, Profile
from coparent.schemas.capabilities import Capabilities

logger = logging.getLogger(__name__)

PREMIUM_TIERS = {"power"}
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}

# Applied when a parent has not configured a child account yet
DEFAULT_CHILD_PERMISSIONS = {
    "allow_parent_messaging": True,
    "allow_family_chat": False,
    "allow_sibling_messaging": False,
    "allow_push_notifications": True,
    "allow_calendar_reminders": True,
    "show_full_event_details": False,
    "allow_mood_checkins": False,
    "allow_notes_to_parents": False,
}

VIEW_ONLY_CHILD = "Child accounts have limited access"
VIEW_ONLY_THIRD_PARTY = "Third-party members have view-only access"
VIEW_ONLY_REVOKED = "Your access to this family has been removed"


def effective_role(profile: Profile) -> str:
    """Map the stored account role onto the three roles the resolver knows."""
    if profile.account_role == "child":
        return "child"
    if profile.account_role == "third_party":
        return "third_party"
    return "parent"


def has_premium_access(profile: Profile | None, now: datetime | None = None) -> bool:
    """Whether a single profile holds paid-tier access on its own."""
    if profile is None:
        return False
    now = now or utcnow()
    if profile.free_premium_access:
        return True
    if (
        profile.subscription_tier in PREMIUM_TIERS
        and profile.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES
    ):
        return True
    trial_ends_at = as_utc(profile.trial_ends_at)
    return trial_ends_at is not None and trial_ends_at > now


def family_tier(profile: Profile, co_parent: Profile | None, now: datetime | None = None) -> str:
    """Tier the family is entitled to. Co-parents share entitlements."""
    if has_premium_access(profile, now) or has_premium_access(co_parent, now):
        return "power"
    return "free"


def third_party_limit(tier: str) -> int:
    return settings.THIRD_PARTY_LIMITS.get(tier, 0)


def _child_flags(permission: ChildPermission | None) -> dict[str, bool]:
    if permission is None:
        return dict(DEFAULT_CHILD_PERMISSIONS)
    return {key: bool(getattr(permission, key)) for key in DEFAULT_CHILD_PERMISSIONS}


def resolve_capabilities(
    profile: Profile,
    *,
    co_parent: Profile | None = None,
    child_permission: ChildPermission | None = None,
    membership: FamilyMembership | None = None,
    now: datetime | None = None,
) -> Capabilities:
    """Derive the capability set from role, linkage and subscription."""
    now = now or utcnow()
    role = effective_role(profile)

    if role == "child":
        flags = _child_flags(child_permission)
        return Capabilities(
            effective_role=role,
            can_view_calendar=True,
            can_view_full_calendar=flags["show_full_event_details"],
            can_send_messages=flags["allow_parent_messaging"] or flags["allow_family_chat"],
            can_submit_mood_checkins=flags["allow_mood_checkins"],
            can_send_notes_to_parents=flags["allow_notes_to_parents"],
            is_view_only=True,
            view_only_reason=VIEW_ONLY_CHILD,
        )

    if role == "third_party":
        active = membership is not None and membership.status == "active"
        return Capabilities(
            effective_role=role,
            can_view_calendar=active,
            can_view_journal=active,
            can_send_messages=active,
            is_view_only=True,
            view_only_reason=VIEW_ONLY_THIRD_PARTY if active else VIEW_ONLY_REVOKED,
        )

    linked = profile.co_parent_id is not None
    premium = family_tier(profile, co_parent if linked else None, now) in PREMIUM_TIERS
    return Capabilities(
        effective_role=role,
        is_co_parent_linked=linked,
        has_premium_access=premium,
        can_mutate=True,
        can_manage_documents=True,
        can_manage_children=True,
        can_manage_expenses=True,
        can_edit_calendar=True,
        can_access_settings=True,
        can_view_calendar=True,
        can_view_full_calendar=True,
        can_view_journal=True,
        can_send_messages=True,
        can_submit_mood_checkins=False,
        can_send_notes_to_parents=False,
        can_view_audit_log=premium,
        can_export_court_records=premium,
        can_invite_co_parent=not linked,
        can_invite_third_party=premium,
        can_access_admin=bool(profile.is_admin),
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

async def load_profile(db: AsyncSession, profile_id: uuid.UUID) -> Profile:
    result = await db.execute(select(Profile).where(Profile.id == profile_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Profile not found", code="not_found")
    return profile


async def get_active_membership(
    db: AsyncSession, member_id: uuid.UUID,
) -> FamilyMembership | None:
    result = await db.execute(
        select(FamilyMembership)
        .where(
            FamilyMembership.member_id == member_id,
            FamilyMembership.status == "active",
        )
        .order_by(FamilyMembership.accepted_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_capabilities(
    db: AsyncSession,
    profile_id: uuid.UUID,
    now: datetime | None = None,
) -> Capabilities:
    """Load a profile's relationships and resolve its capabilities."""
    profile = await load_profile(db, profile_id)
    role = effective_role(profile)

    co_parent = None
    child_permission = None
    membership = None

    if role == "parent" and profile.co_parent_id is not None:
        result = await db.execute(select(Profile).where(Profile.id == profile.co_parent_id))
        co_parent = result.scalar_one_or_none()
    elif role == "child":
        result = await db.execute(
            select(ChildPermission).where(ChildPermission.child_profile_id == profile.id)
        )
        child_permission = result.scalar_one_or_none()
    elif role == "third_party":
        membership = await get_active_membership(db, profile.id)

    return resolve_capabilities(
        profile,
        co_parent=co_parent,
        child_permission=child_permission,
        membership=membership,
        now=now,
    )


async def update_child_permissions(
    db: AsyncSession,
    parent: Profile,
    child_profile_id: uuid.UUID,
    changes: dict[str, bool],
) -> ChildPermission:
    """Apply parent-set toggles to a child's permission record.

    The record is editable by the parent who owns it and by that parent's
    linked co-parent.
    """
    result = await db.execute(
        select(ChildPermission).where(ChildPermission.child_profile_id == child_profile_id)
    )
    permission = result.scalar_one_or_none()
    if permission is None:
        raise NotFound("Child account not found", code="not_found")

    allowed = {parent.id}
    if parent.co_parent_id is not None:
        allowed.add(parent.co_parent_id)
    if effective_role(parent) != "parent" or permission.parent_profile_id not in allowed:
        raise NotPermitted("Only this child's parents can change their permissions")

    for key, value in changes.items():
        if key in DEFAULT_CHILD_PERMISSIONS and value is not None:
            setattr(permission, key, value)
    await db.flush()
    await db.refresh(permission)
    logger.info("Child permissions for %s updated by %s", child_profile_id, parent.id)
    return permission
