import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

AudienceTag = Literal["friend", "family", "promoter", "partner", "custom"]


class AccessCodeCreate(BaseModel):
    label: str = Field(min_length=1, max_length=120)
    audience_tag: AudienceTag = "custom"
    access_reason: str = Field(min_length=1, max_length=255)
    grant_tier: Literal["power"] = "power"
    max_redemptions: int = Field(default=1, ge=1, le=10000)
    expires_at: datetime | None = None


class AccessCodeResponse(BaseModel):
    id: uuid.UUID
    code_preview: str
    label: str
    audience_tag: str
    access_reason: str
    grant_tier: str
    max_redemptions: int
    redeemed_count: int
    active: bool
    expires_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccessCodeCreated(AccessCodeResponse):
    """Returned once at creation; the raw code is not stored."""

    code: str


class AccessCodeRedeem(BaseModel):
    code: str = Field(min_length=4, max_length=128)


class AccessCodeRedeemed(BaseModel):
    granted: str  # tier
    reason: str
    label: str | None = None
    already_redeemed: bool = False


class AccessCodeUpdate(BaseModel):
    active: bool
