"""Invitations router.

Issue, list, resend and revoke invitations, and resolve or accept a
presented token. Email delivery and family notifications are queued as
background tasks, so they only run once the request's transaction has
been committed.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.dependencies import get_current_profile, get_identity, get_optional_identity
from coparent.core.rate_limit import limiter
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.schemas.invitation import (
    InvitationAccept,
    InvitationAccepted,
    InvitationCreate,
    InvitationIssued,
    InvitationResolution,
    InvitationResponse,
)
from coparent.schemas.profile import CallerIdentity
from coparent.services import family_linker, invitation_service
from coparent.services.email_service import build_invite_url, send_invitation_email
from coparent.services.notification_service import notify_co_parent_linked, notify_third_party_added

router = APIRouter(prefix="/invitations", tags=["Invitations"])


def _queue_invitation_email(background: BackgroundTasks, invitation, inviter: Profile) -> None:
    background.add_task(
        send_invitation_email,
        invitation.invitee_email,
        invitation_service.inviter_display_name(inviter),
        invitation.token,
        invitation.invitation_type,
        invitation.relationship,
    )


@router.post("", response_model=InvitationIssued, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/hour")
async def create_invitation(
    request: Request,
    body: InvitationCreate,
    background: BackgroundTasks,
    inviter: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> InvitationIssued:
    """Invite a co-parent or a third-party member by email.

    The token is returned to the inviter so the link can be shared even if
    the email never arrives.
    """
    invitation = await invitation_service.issue_invitation(
        db,
        inviter,
        body.email,
        body.invitation_type,
        relationship=body.relationship,
        child_ids=body.child_ids,
    )
    _queue_invitation_email(background, invitation, inviter)
    return InvitationIssued(
        id=invitation.id,
        token=invitation.token,
        invite_url=build_invite_url(invitation.token),
        invitee_email=invitation.invitee_email,
        invitation_type=invitation.invitation_type,
        expires_at=invitation.expires_at,
    )


@router.get("", response_model=list[InvitationResponse])
async def list_invitations(
    inviter: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List invitations the caller has sent, newest first."""
    return await invitation_service.list_sent_invitations(db, inviter)


@router.get("/resolve", response_model=InvitationResolution)
@limiter.limit("30/minute")
async def resolve_invitation(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[CallerIdentity | None, Depends(get_optional_identity)],
    token: Annotated[str | None, Query(max_length=128)] = None,
) -> InvitationResolution:
    """Check a token before sign-in or acceptance.

    Anonymous callers get a preview; signed-in callers are also checked
    against the invited email address.
    """
    return await invitation_service.resolve_invitation(db, token, identity)


@router.post("/accept", response_model=InvitationAccepted)
@limiter.limit("10/minute")
async def accept_invitation(
    request: Request,
    body: InvitationAccept,
    background: BackgroundTasks,
    identity: Annotated[CallerIdentity, Depends(get_identity)],
    caller: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> InvitationAccepted:
    """Accept an invitation as the signed-in caller.

    The caller's email comes from the verified token, never from the body.
    """
    result = await family_linker.accept_invitation(db, body.token, caller, identity)

    if result.linked == "co_parent":
        background.add_task(
            notify_co_parent_linked,
            result.co_parent_id,
            caller.id,
            caller.display_name or caller.email or "Your co-parent",
        )
    if result.notify_parents:
        background.add_task(
            notify_third_party_added,
            result.notify_parents,
            caller.display_name or caller.email or "A new member",
            caller.email or "",
            result.relationship,
        )

    return InvitationAccepted(
        linked=result.linked,
        invitation_id=result.invitation_id,
        co_parent_id=result.co_parent_id,
        primary_parent_id=result.primary_parent_id,
        membership_id=result.membership_id,
        trial_ends_at=result.trial_ends_at,
    )


@router.post("/{invitation_id}/resend", response_model=InvitationResponse)
@limiter.limit("5/hour")
async def resend_invitation(
    request: Request,
    invitation_id: uuid.UUID,
    background: BackgroundTasks,
    inviter: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Send the email for a pending invitation again."""
    invitation = await invitation_service.prepare_resend(db, inviter, invitation_id)
    _queue_invitation_email(background, invitation, inviter)
    return invitation


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    inviter: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Withdraw a pending invitation so its link stops working."""
    await invitation_service.revoke_invitation(db, inviter, invitation_id)
