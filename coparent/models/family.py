import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from coparent.database import Base
from coparent.types import UUIDArray


class FamilyMembership(Base):
    """A third-party member attached to a family unit.

    ``primary_parent_id`` is the family anchor: the smaller id of the two
    linked co-parents, or the sole parent's id. It is fixed at acceptance.
    """

    __tablename__ = "family_memberships"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False, index=True,
    )
    primary_parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False, index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="third_party")
    relationship: Mapped[str | None] = mapped_column(String(50), nullable=True)
    child_ids: Mapped[list[uuid.UUID] | None] = mapped_column(UUIDArray, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    invited_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False,
    )
    invitation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("invitations.id"), nullable=True,
    )
    accepted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<FamilyMembership(member_id={self.member_id}, "
            f"primary_parent_id={self.primary_parent_id}, status={self.status!r})>"
        )
