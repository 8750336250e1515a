import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from coparent.database import Base

AUDIENCE_TAGS = ("friend", "family", "promoter", "partner", "custom")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessPassCode(Base):
    """Admin-issued code granting a subscription tier outside billing.

    Only the SHA-256 hash and a short preview of the code are stored.
    """

    __tablename__ = "access_pass_codes"
    __table_args__ = (
        CheckConstraint("max_redemptions > 0", name="ck_access_pass_max_positive"),
        CheckConstraint(
            "redeemed_count >= 0 AND redeemed_count <= max_redemptions",
            name="ck_access_pass_redeemed_within_cap",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    code_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    code_preview: Mapped[str] = mapped_column(String(20), nullable=False)
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    audience_tag: Mapped[str] = mapped_column(String(20), nullable=False, default="custom")
    access_reason: Mapped[str] = mapped_column(Text, nullable=False)
    grant_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="power")
    max_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    redeemed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AccessPassCode(id={self.id}, preview={self.code_preview!r})>"


class AccessPassRedemption(Base):
    __tablename__ = "access_pass_redemptions"
    __table_args__ = (
        UniqueConstraint("access_pass_code_id", "profile_id", name="uq_access_pass_redemption"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    access_pass_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("access_pass_codes.id", ondelete="CASCADE"), nullable=False,
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
    )
    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<AccessPassRedemption(code={self.access_pass_code_id}, "
            f"profile_id={self.profile_id})>"
        )
