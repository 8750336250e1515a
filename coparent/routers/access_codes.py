"""Access codes router.

Redeem an access-pass code, and the admin endpoints that mint and manage
codes.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.dependencies import get_current_profile, require_capability
from coparent.core.rate_limit import limiter
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.schemas.access_pass import (
    AccessCodeCreate,
    AccessCodeCreated,
    AccessCodeRedeem,
    AccessCodeRedeemed,
    AccessCodeResponse,
    AccessCodeUpdate,
)
from coparent.services import access_pass_service

router = APIRouter(tags=["Access Codes"])

require_admin = require_capability("can_access_admin")


@router.post("/access-codes/redeem", response_model=AccessCodeRedeemed)
@limiter.limit("10/minute")
async def redeem_code(
    request: Request,
    body: AccessCodeRedeem,
    profile: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AccessCodeRedeemed:
    """Redeem a code for the caller. Repeating a successful redemption is harmless."""
    result = await access_pass_service.redeem_access_code(db, body.code, profile)
    return AccessCodeRedeemed(
        granted=result.granted,
        reason=result.reason,
        label=result.label,
        already_redeemed=result.already_redeemed,
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@router.post(
    "/admin/access-codes",
    response_model=AccessCodeCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_code(
    body: AccessCodeCreate,
    admin: Annotated[Profile, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Mint a code. The raw code is only ever returned here."""
    code, raw = await access_pass_service.create_access_code(
        db,
        admin,
        label=body.label,
        access_reason=body.access_reason,
        audience_tag=body.audience_tag,
        max_redemptions=body.max_redemptions,
        expires_at=body.expires_at,
        grant_tier=body.grant_tier,
    )
    return AccessCodeCreated(
        **AccessCodeResponse.model_validate(code).model_dump(),
        code=raw,
    )


@router.get("/admin/access-codes", response_model=list[AccessCodeResponse])
async def list_codes(
    admin: Annotated[Profile, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await access_pass_service.list_access_codes(db)


@router.patch("/admin/access-codes/{code_id}", response_model=AccessCodeResponse)
async def update_code(
    code_id: uuid.UUID,
    body: AccessCodeUpdate,
    admin: Annotated[Profile, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await access_pass_service.set_access_code_active(db, code_id, body.active)


@router.delete("/admin/access-codes/{code_id}", response_model=AccessCodeResponse)
async def deactivate_code(
    code_id: uuid.UUID,
    admin: Annotated[Profile, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Deactivate a code. Past redemptions keep their grant."""
    return await access_pass_service.set_access_code_active(db, code_id, False)
