from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.security import decode_token
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.schemas.capabilities import Capabilities
from coparent.schemas.profile import CallerIdentity
from coparent.services.permission_service import get_capabilities

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def identity_from_token(token: str) -> CallerIdentity:
    """Decode a bearer token into the caller's identity.

    Raises:
        HTTPException 401: If the token is invalid, expired, or not an
            access token.
    """
    try:
        payload = decode_token(token)
        sub: str | None = payload.get("sub")
        if sub is None or payload.get("type") != "access":
            raise _credentials_exception()
        return CallerIdentity(
            auth_user_id=UUID(sub),
            email=payload.get("email"),
            name=payload.get("name"),
        )
    except (JWTError, ValueError):
        raise _credentials_exception()


async def get_identity(token: Annotated[str, Depends(oauth2_scheme)]) -> CallerIdentity:
    return identity_from_token(token)


async def get_optional_identity(
    token: Annotated[str | None, Depends(optional_oauth2_scheme)],
) -> CallerIdentity | None:
    """Like ``get_identity`` but anonymous callers get ``None``."""
    if token is None:
        return None
    return identity_from_token(token)


async def provision_profile(db: AsyncSession, identity: CallerIdentity) -> Profile:
    """Return the caller's profile, creating it on first sight."""
    result = await db.execute(select(Profile).where(Profile.auth_user_id == identity.auth_user_id))
    profile = result.scalar_one_or_none()
    if profile is not None:
        return profile

    profile = Profile(
        auth_user_id=identity.auth_user_id,
        email=identity.email.strip().lower() if identity.email else None,
        display_name=identity.name,
    )
    db.add(profile)
    try:
        await db.flush()
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another account already uses this email address",
        )
    return profile


async def get_current_profile(
    identity: Annotated[CallerIdentity, Depends(get_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Profile:
    """Profile of the authenticated caller.

    Raises:
        HTTPException 401: If the token is missing or invalid.
    """
    return await provision_profile(db, identity)


async def get_current_capabilities(
    profile: Annotated[Profile, Depends(get_current_profile)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Capabilities:
    return await get_capabilities(db, profile.id)


def require_capability(name: str):
    """Factory that returns a dependency requiring one capability flag.

    Usage::

        @router.get("/admin/access-codes")
        async def list_codes(
            profile: Profile = Depends(require_capability("can_access_admin")),
        ):
            ...
    """
    if name not in Capabilities.model_fields:
        raise ValueError(f"Unknown capability: {name}")

    async def _check_capability(
        profile: Annotated[Profile, Depends(get_current_profile)],
        caps: Annotated[Capabilities, Depends(get_current_capabilities)],
    ) -> Profile:
        if not getattr(caps, name):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to do this",
            )
        return profile

    return _check_capability
