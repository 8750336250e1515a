import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from coparent.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    auth_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)  # lowercase
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Mirrored on the partner's row; see services.family_linker
    co_parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True,
    )
    account_role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="parent",
    )  # 'parent', 'child' or 'third_party'
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Subscription
    subscription_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    subscription_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    free_premium_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    access_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, role={self.account_role!r})>"


class ChildPermission(Base):
    """Parent-configured view toggles for a child account."""

    __tablename__ = "child_permissions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    child_profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), unique=True, nullable=False,
    )
    parent_profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False,
    )
    allow_parent_messaging: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allow_family_chat: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allow_sibling_messaging: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allow_push_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allow_calendar_reminders: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    show_full_event_details: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allow_mood_checkins: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allow_notes_to_parents: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ChildPermission(child_profile_id={self.child_profile_id})>"
