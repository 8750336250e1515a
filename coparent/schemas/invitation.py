import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

InvitationType = Literal["co_parent", "third_party"]
Relationship = Literal[
    "step_parent",
    "grandparent",
    "aunt_uncle",
    "sibling",
    "babysitter",
    "family_friend",
    "therapist",
    "other",
]
ResolutionStatus = Literal["valid", "invalid", "expired", "already_accepted", "email_mismatch"]


class InvitationCreate(BaseModel):
    email: EmailStr
    invitation_type: InvitationType = "co_parent"
    relationship: Relationship | None = None
    child_ids: list[uuid.UUID] = Field(default_factory=list)


class InvitationIssued(BaseModel):
    id: uuid.UUID
    token: str
    invite_url: str
    invitee_email: str
    invitation_type: str
    expires_at: datetime


class InvitationResponse(BaseModel):
    id: uuid.UUID
    token: str
    inviter_id: uuid.UUID
    invitee_email: str
    invitation_type: str
    status: str
    relationship: str | None = None
    child_ids: list[uuid.UUID] | None = None
    expires_at: datetime
    accepted_by: uuid.UUID | None = None
    accepted_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationResolution(BaseModel):
    """Outcome of checking a presented token. Only ``valid`` carries details."""

    status: ResolutionStatus
    invitation_id: uuid.UUID | None = None
    inviter_id: uuid.UUID | None = None
    inviter_name: str | None = None
    invitation_type: str | None = None
    invitee_email: str | None = None
    relationship: str | None = None
    expires_at: datetime | None = None


class InvitationAccept(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class InvitationAccepted(BaseModel):
    linked: InvitationType
    invitation_id: uuid.UUID
    co_parent_id: uuid.UUID | None = None
    primary_parent_id: uuid.UUID | None = None
    membership_id: uuid.UUID | None = None
    trial_ends_at: datetime | None = None
