import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CallerIdentity(BaseModel):
    """Who is calling, as asserted by the identity provider's token.

    ``email`` is the provider-verified address; request bodies never
    override it.
    """

    auth_user_id: uuid.UUID
    email: str | None = None
    name: str | None = None


class ProfileResponse(BaseModel):
    id: uuid.UUID
    email: str | None = None
    display_name: str | None = None
    co_parent_id: uuid.UUID | None = None
    account_role: str
    subscription_tier: str
    subscription_status: str | None = None
    free_premium_access: bool = False
    access_reason: str | None = None
    trial_ends_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileSummary(BaseModel):
    id: uuid.UUID
    email: str | None = None
    display_name: str | None = None

    model_config = ConfigDict(from_attributes=True)
