"""Access-pass codes: admin-issued credentials that grant a paid tier.

The raw code is shown to the admin once and never stored; lookups go
through its SHA-256 hash. The redemption cap is enforced by a single
conditional UPDATE so concurrent redemptions can never overshoot it.
"""

import hashlib
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.exceptions import (
    AlreadyConsumed,
    CapacityExhausted,
    CodeInactive,
    Expired,
    InvalidRequest,
    NotFound,
)
from coparent.core.timeutils import as_utc, utcnow
from coparent.models.access_pass import AUDIENCE_TAGS, AccessPassCode, AccessPassRedemption
from coparent.models.profile import Profile

logger = logging.getLogger(__name__)

_CODE_CHARS = re.compile(r"[^A-Z0-9-]")

# Excludes 0, O, 1 and I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def normalize_code(code: str) -> str:
    return _CODE_CHARS.sub("", code.strip().upper())


def hash_code(code: str) -> str:
    return hashlib.sha256(normalize_code(code).encode()).hexdigest()


def code_preview(code: str) -> str:
    code = normalize_code(code)
    return f"{code[:5]}...{code[-4:]}"


def generate_code() -> str:
    """Random code in the form ``CP-XXXXXX-XXXXXX``."""
    groups = ("".join(secrets.choice(CODE_ALPHABET) for _ in range(6)) for _ in range(2))
    return "CP-" + "-".join(groups)


def _is_expired(code: AccessPassCode, now: datetime) -> bool:
    expires_at = as_utc(code.expires_at)
    return expires_at is not None and expires_at < now


@dataclass
class RedemptionResult:
    granted: str
    reason: str
    label: str | None = None
    already_redeemed: bool = False


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

async def create_access_code(
    db: AsyncSession,
    admin: Profile,
    label: str,
    access_reason: str,
    audience_tag: str = "custom",
    max_redemptions: int = 1,
    expires_at: datetime | None = None,
    grant_tier: str = "power",
) -> tuple[AccessPassCode, str]:
    """Create a code and return ``(row, raw_code)``. The raw code is not persisted."""
    if audience_tag not in AUDIENCE_TAGS:
        raise InvalidRequest(f"Invalid audience tag: {audience_tag}")
    if max_redemptions < 1:
        raise InvalidRequest("max_redemptions must be at least 1")

    raw = generate_code()
    code = AccessPassCode(
        code_hash=hash_code(raw),
        code_preview=code_preview(raw),
        label=label.strip(),
        audience_tag=audience_tag,
        access_reason=access_reason.strip(),
        grant_tier=grant_tier,
        max_redemptions=max_redemptions,
        redeemed_count=0,
        active=True,
        expires_at=expires_at,
        created_by=admin.id,
    )
    db.add(code)
    await db.flush()
    await db.refresh(code)
    logger.info("Access code %s (%s) created by %s", code.id, code.code_preview, admin.id)
    return code, raw


async def list_access_codes(db: AsyncSession) -> list[AccessPassCode]:
    result = await db.execute(select(AccessPassCode).order_by(AccessPassCode.created_at.desc()))
    return list(result.scalars().all())


async def set_access_code_active(
    db: AsyncSession, code_id: uuid.UUID, active: bool,
) -> AccessPassCode:
    result = await db.execute(select(AccessPassCode).where(AccessPassCode.id == code_id))
    code = result.scalar_one_or_none()
    if code is None:
        raise NotFound("Access code not found", code="not_found")
    code.active = active
    await db.flush()
    await db.refresh(code)
    logger.info("Access code %s %s", code.id, "activated" if active else "deactivated")
    return code


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------

async def _classify_refusal(db: AsyncSession, code: AccessPassCode, now: datetime) -> None:
    """Raise the error explaining why the conditional increment matched nothing."""
    await db.refresh(code)
    if not code.active:
        raise CodeInactive()
    if _is_expired(code, now):
        raise Expired("That access code has expired")
    raise CapacityExhausted()


async def redeem_access_code(
    db: AsyncSession,
    raw_code: str,
    profile: Profile,
    now: datetime | None = None,
) -> RedemptionResult:
    """Redeem a code for ``profile`` and grant the code's tier.

    Raises:
        NotFound: No code with this hash.
        CodeInactive: The code was deactivated.
        Expired: The code is past its expiry.
        CapacityExhausted: Every redemption slot is taken.
    """
    now = now or utcnow()
    if not normalize_code(raw_code):
        raise NotFound("Please enter a valid access code")

    result = await db.execute(
        select(AccessPassCode).where(AccessPassCode.code_hash == hash_code(raw_code))
    )
    code = result.scalar_one_or_none()
    if code is None:
        raise NotFound("That access code is not valid")
    if not code.active:
        raise CodeInactive()
    if _is_expired(code, now):
        raise Expired("That access code has expired")

    existing = await db.execute(
        select(AccessPassRedemption.id).where(
            AccessPassRedemption.access_pass_code_id == code.id,
            AccessPassRedemption.profile_id == profile.id,
        )
    )
    if existing.first() is not None:
        return RedemptionResult(
            granted=code.grant_tier,
            reason=code.access_reason,
            label=code.label,
            already_redeemed=True,
        )

    claimed = await db.execute(
        update(AccessPassCode)
        .where(
            AccessPassCode.id == code.id,
            AccessPassCode.active.is_(True),
            AccessPassCode.redeemed_count < AccessPassCode.max_redemptions,
            or_(AccessPassCode.expires_at.is_(None), AccessPassCode.expires_at >= now),
        )
        .values(redeemed_count=AccessPassCode.redeemed_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        logger.info("Access code %s refused for %s", code.code_preview, profile.id)
        await _classify_refusal(db, code, now)

    db.add(AccessPassRedemption(access_pass_code_id=code.id, profile_id=profile.id, redeemed_at=now))
    try:
        await db.flush()
    except IntegrityError as e:
        # Same profile redeemed concurrently; the transaction rolls back the increment
        raise AlreadyConsumed(
            "This code has already been redeemed on your account", code="already_redeemed",
        ) from e

    await db.execute(
        update(Profile)
        .where(Profile.id == profile.id)
        .values(
            free_premium_access=True,
            access_reason=code.access_reason,
            subscription_tier=code.grant_tier,
            subscription_status="active",
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    await db.refresh(profile)
    await db.refresh(code)

    logger.info("Access code %s redeemed by %s", code.code_preview, profile.id)
    return RedemptionResult(granted=code.grant_tier, reason=code.access_reason, label=code.label)
