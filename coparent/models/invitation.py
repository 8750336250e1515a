import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from coparent.database import Base
from coparent.types import UUIDArray

INVITATION_TYPES = ("co_parent", "third_party")
INVITATION_STATUSES = ("pending", "accepted", "expired", "revoked")


class Invitation(Base):
    __tablename__ = "invitations"
    __table_args__ = (
        # One pending invitation per (inviter, email, type)
        Index(
            "uq_invitations_pending",
            "inviter_id",
            "invitee_email",
            "invitation_type",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    inviter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False,
    )
    invitee_email: Mapped[str] = mapped_column(String(255), nullable=False)
    invitation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Third-party only
    relationship: Mapped[str | None] = mapped_column(String(50), nullable=True)
    child_ids: Mapped[list[uuid.UUID] | None] = mapped_column(UUIDArray, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    accepted_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True,
    )
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, type={self.invitation_type!r}, status={self.status!r})>"
