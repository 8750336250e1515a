"""Invitation Service.

Issues single-use invitation tokens and resolves presented tokens into one
of a fixed set of outcomes. Linking itself lives in ``family_linker``.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.config import settings
from coparent.core.exceptions import (
    AlreadyConsumed,
    AlreadyLinked,
    DuplicateInvitation,
    Expired,
    InvalidRequest,
    NotFound,
    NotPermitted,
    PlanLimitReached,
)
from coparent.core.timeutils import as_utc, utcnow
from coparent.models.invitation import INVITATION_TYPES, Invitation
from coparent.models.profile import Profile
from coparent.schemas.invitation import InvitationResolution, InvitationResponse
from coparent.schemas.profile import CallerIdentity
from coparent.services.family_service import count_third_party_slots_used, primary_parent_id_for
from coparent.services.permission_service import get_capabilities, third_party_limit

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_token() -> str:
    """URL-safe random token; 32 bytes gives 256 bits of entropy."""
    return secrets.token_urlsafe(settings.INVITATION_TOKEN_BYTES)


def token_preview(token: str) -> str:
    """Loggable prefix of a token."""
    return f"{token[:6]}..."


def is_expired(invitation: Invitation, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return invitation.status == "expired" or as_utc(invitation.expires_at) < now


def effective_status(invitation: Invitation, now: datetime | None = None) -> str:
    """Stored status with lazy expiry applied to pending rows."""
    if invitation.status == "pending" and is_expired(invitation, now):
        return "expired"
    return invitation.status


def inviter_display_name(inviter: Profile | None) -> str:
    if inviter is None:
        return "A family member"
    return inviter.display_name or inviter.email or "A family member"


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def _check_third_party_capacity(
    db: AsyncSession,
    inviter: Profile,
    premium: bool,
    now: datetime,
) -> None:
    anchor = primary_parent_id_for(inviter.id, inviter.co_parent_id)
    parent_ids = [inviter.id]
    if inviter.co_parent_id is not None:
        parent_ids.append(inviter.co_parent_id)

    limit = third_party_limit("power" if premium else "free")
    used = await count_third_party_slots_used(db, anchor, parent_ids, now)
    if used >= limit:
        raise PlanLimitReached(
            f"Your plan allows up to {limit} third-party members",
            limit=limit,
            used=used,
        )


async def issue_invitation(
    db: AsyncSession,
    inviter: Profile,
    email: str,
    invitation_type: str,
    relationship: str | None = None,
    child_ids: list[uuid.UUID] | None = None,
    now: datetime | None = None,
) -> Invitation:
    """Create a pending invitation and return it (token included).

    Raises:
        DuplicateInvitation: A pending, unexpired invitation already exists
            for the same inviter, email and type.
        AlreadyLinked: Co-parent invite from an already linked parent.
        PlanLimitReached: Third-party invite beyond the family's plan.
        NotPermitted: The inviter is not a parent.
    """
    now = now or utcnow()
    if invitation_type not in INVITATION_TYPES:
        raise InvalidRequest(f"Unknown invitation type: {invitation_type}")

    email = normalize_email(email)
    if not email:
        raise InvalidRequest("An email address is required")
    if inviter.email is not None and normalize_email(inviter.email) == email:
        raise InvalidRequest("You cannot invite yourself")

    caps = await get_capabilities(db, inviter.id, now)
    if caps.effective_role != "parent":
        raise NotPermitted("Only parents can send invitations")

    if invitation_type == "co_parent":
        if not caps.can_invite_co_parent:
            raise AlreadyLinked("You are already linked with a co-parent")
        relationship = None
        child_ids = None
    else:
        if not caps.can_invite_third_party:
            raise PlanLimitReached("Third-party access requires a paid plan", limit=0)
        await _check_third_party_capacity(db, inviter, caps.has_premium_access, now)

    result = await db.execute(
        select(Invitation).where(
            Invitation.inviter_id == inviter.id,
            Invitation.invitee_email == email,
            Invitation.invitation_type == invitation_type,
            Invitation.status == "pending",
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        if not is_expired(existing, now):
            raise DuplicateInvitation(invitation_id=existing.id)
        # Superseded: free the pending slot for the new row
        existing.status = "expired"
        await db.flush()

    invitation = Invitation(
        token=generate_token(),
        inviter_id=inviter.id,
        invitee_email=email,
        invitation_type=invitation_type,
        status="pending",
        relationship=relationship,
        child_ids=child_ids or None,
        created_at=now,
        expires_at=now + timedelta(days=settings.INVITATION_TTL_DAYS),
    )
    db.add(invitation)
    try:
        await db.flush()
    except IntegrityError as e:
        # A concurrent request inserted the same pending tuple first
        raise DuplicateInvitation() from e

    logger.info(
        "Invitation %s issued (%s) by %s to %s",
        invitation.id, invitation_type, inviter.id, email,
    )
    return invitation


async def get_sent_invitation(
    db: AsyncSession, inviter: Profile, invitation_id: uuid.UUID,
) -> Invitation:
    result = await db.execute(
        select(Invitation).where(
            Invitation.id == invitation_id,
            Invitation.inviter_id == inviter.id,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFound("Invitation not found", code="not_found")
    return invitation


async def prepare_resend(
    db: AsyncSession,
    inviter: Profile,
    invitation_id: uuid.UUID,
    now: datetime | None = None,
) -> Invitation:
    """Check that an invitation can be delivered again and return it."""
    invitation = await get_sent_invitation(db, inviter, invitation_id)
    status = effective_status(invitation, now)
    if status == "accepted":
        raise AlreadyConsumed()
    if status != "pending":
        raise Expired("This invitation is no longer valid. Send a new one instead.")
    return invitation


async def revoke_invitation(
    db: AsyncSession,
    inviter: Profile,
    invitation_id: uuid.UUID,
) -> Invitation:
    """Withdraw a pending invitation. Revoking twice is a no-op."""
    invitation = await get_sent_invitation(db, inviter, invitation_id)
    result = await db.execute(
        update(Invitation)
        .where(Invitation.id == invitation.id, Invitation.status == "pending")
        .values(status="revoked")
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    await db.refresh(invitation)
    if result.rowcount == 0 and invitation.status == "accepted":
        raise AlreadyConsumed()
    logger.info("Invitation %s revoked by %s", invitation.id, inviter.id)
    return invitation


async def list_sent_invitations(
    db: AsyncSession,
    inviter: Profile,
    now: datetime | None = None,
) -> list[InvitationResponse]:
    """All invitations sent by a profile, newest first, with lazy expiry applied."""
    result = await db.execute(
        select(Invitation)
        .where(Invitation.inviter_id == inviter.id)
        .order_by(Invitation.created_at.desc())
    )
    return [
        InvitationResponse.model_validate(inv).model_copy(
            update={"status": effective_status(inv, now)}
        )
        for inv in result.scalars().all()
    ]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

async def lookup_and_resolve(
    db: AsyncSession,
    token: str | None,
    identity: CallerIdentity | None = None,
    now: datetime | None = None,
) -> tuple[InvitationResolution, Invitation | None]:
    """Resolve a token and also hand back the row for the linker."""
    now = now or utcnow()
    if not token:
        return InvitationResolution(status="invalid"), None

    result = await db.execute(select(Invitation).where(Invitation.token == token))
    invitation = result.scalar_one_or_none()
    if invitation is None:
        return InvitationResolution(status="invalid"), None

    if invitation.status == "accepted":
        return InvitationResolution(status="already_accepted"), invitation

    # Revoked invitations are reported like expired ones: no longer usable
    if invitation.status == "revoked" or is_expired(invitation, now):
        return InvitationResolution(status="expired"), invitation

    if invitation.invitation_type == "third_party" and identity is not None:
        caller_email = normalize_email(identity.email or "")
        if caller_email != invitation.invitee_email:
            return InvitationResolution(status="email_mismatch"), invitation

    inviter_result = await db.execute(select(Profile).where(Profile.id == invitation.inviter_id))
    inviter = inviter_result.scalar_one_or_none()

    return InvitationResolution(
        status="valid",
        invitation_id=invitation.id,
        inviter_id=invitation.inviter_id,
        inviter_name=inviter_display_name(inviter),
        invitation_type=invitation.invitation_type,
        invitee_email=(
            invitation.invitee_email if invitation.invitation_type == "third_party" else None
        ),
        relationship=invitation.relationship,
        expires_at=invitation.expires_at,
    ), invitation


async def resolve_invitation(
    db: AsyncSession,
    token: str | None,
    identity: CallerIdentity | None = None,
    now: datetime | None = None,
) -> InvitationResolution:
    """Check a presented token against status, expiry and caller email.

    Re-evaluated on every call. Without an identity the email check is
    skipped (preview before sign-in); acceptance always supplies one.
    """
    resolution, _ = await lookup_and_resolve(db, token, identity, now)
    if resolution.status != "valid":
        logger.info("Invitation token %s resolved %s", token_preview(token or ""), resolution.status)
    return resolution
