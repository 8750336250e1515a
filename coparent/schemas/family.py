import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from coparent.schemas.profile import ProfileSummary


class FamilyMemberResponse(BaseModel):
    id: uuid.UUID
    member_id: uuid.UUID
    primary_parent_id: uuid.UUID
    role: str
    relationship: str | None = None
    child_ids: list[uuid.UUID] | None = None
    status: str
    invited_by: uuid.UUID
    accepted_at: datetime
    revoked_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FamilyResponse(BaseModel):
    primary_parent_id: uuid.UUID
    parents: list[ProfileSummary]
    members: list[FamilyMemberResponse]
