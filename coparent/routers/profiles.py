"""Profiles router.

The caller's own profile, resolved capabilities, and parent-managed
child permissions.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.dependencies import get_current_capabilities, get_current_profile
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.schemas.capabilities import (
    Capabilities,
    ChildPermissionResponse,
    ChildPermissionUpdate,
)
from coparent.schemas.profile import ProfileResponse
from coparent.services.family_service import can_view_profile
from coparent.services.permission_service import (
    get_capabilities,
    load_profile,
    update_child_permissions,
)

router = APIRouter(prefix="/profiles", tags=["Profiles"])


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    profile: Annotated[Profile, Depends(get_current_profile)],
):
    """Return the caller's profile, creating it on first sight."""
    return profile


@router.get("/me/capabilities", response_model=Capabilities)
async def get_my_capabilities(
    caps: Annotated[Capabilities, Depends(get_current_capabilities)],
):
    return caps


@router.get("/{profile_id}/capabilities", response_model=Capabilities)
async def get_profile_capabilities(
    profile_id: uuid.UUID,
    viewer: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Capabilities of another profile. Only visible to that profile's family parents."""
    target = await load_profile(db, profile_id)
    if not await can_view_profile(db, viewer, target):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this profile",
        )
    return await get_capabilities(db, target.id)


@router.put(
    "/children/{child_profile_id}/permissions",
    response_model=ChildPermissionResponse,
)
async def set_child_permissions(
    child_profile_id: uuid.UUID,
    body: ChildPermissionUpdate,
    parent: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update the toggles a parent controls for a child account."""
    return await update_child_permissions(
        db, parent, child_profile_id, body.model_dump(exclude_unset=True),
    )
