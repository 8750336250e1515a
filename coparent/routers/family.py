"""Family router.

Read the caller's family (parents and third-party members) and remove
third-party members.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.dependencies import get_current_profile
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.schemas.family import FamilyMemberResponse, FamilyResponse
from coparent.schemas.profile import ProfileSummary
from coparent.services.family_service import (
    get_family_anchor_for,
    get_family_parents,
    list_members,
    revoke_membership,
)
from coparent.services.permission_service import effective_role

router = APIRouter(prefix="/family", tags=["Family"])


@router.get("", response_model=FamilyResponse)
async def get_family(
    profile: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
    include_revoked: Annotated[bool, Query()] = False,
):
    """The caller's family. Third-party members see the parents only."""
    anchor = await get_family_anchor_for(db, profile)
    parents = await get_family_parents(db, anchor)

    members = []
    if effective_role(profile) == "parent":
        members = await list_members(db, anchor, include_revoked=include_revoked)

    return FamilyResponse(
        primary_parent_id=anchor,
        parents=[ProfileSummary.model_validate(p) for p in parents],
        members=[FamilyMemberResponse.model_validate(m) for m in members],
    )


@router.delete("/members/{membership_id}", response_model=FamilyMemberResponse)
async def remove_member(
    membership_id: uuid.UUID,
    parent: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Revoke a third-party member's access. Either parent may do this."""
    return await revoke_membership(db, parent, membership_id)
