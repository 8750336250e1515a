"""Initial schema: profiles, invitations, family memberships, access passes.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("auth_user_id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("co_parent_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("account_role", sa.String(20), nullable=False, server_default="parent"),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subscription_tier", sa.String(20), nullable=False, server_default="free"),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("free_premium_access", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("access_reason", sa.Text(), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_user_id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "child_permissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("child_profile_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("parent_profile_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("allow_parent_messaging", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("allow_family_chat", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_sibling_messaging", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_push_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("allow_calendar_reminders", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("show_full_event_details", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_mood_checkins", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_notes_to_parents", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("child_profile_id"),
    )

    op.create_table(
        "invitations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("inviter_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("invitee_email", sa.String(255), nullable=False),
        sa.Column("invitation_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("child_ids", postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_by", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index(
        "uq_invitations_pending",
        "invitations",
        ["inviter_id", "invitee_email", "invitation_type"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "family_memberships",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("primary_parent_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="third_party"),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("child_ids", postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("invited_by", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("invitation_id", sa.Uuid(), sa.ForeignKey("invitations.id"), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_family_memberships_member_id", "family_memberships", ["member_id"])
    op.create_index(
        "ix_family_memberships_primary_parent_id", "family_memberships", ["primary_parent_id"],
    )

    op.create_table(
        "access_pass_codes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("code_preview", sa.String(20), nullable=False),
        sa.Column("label", sa.String(120), nullable=False),
        sa.Column("audience_tag", sa.String(20), nullable=False, server_default="custom"),
        sa.Column("access_reason", sa.Text(), nullable=False),
        sa.Column("grant_tier", sa.String(20), nullable=False, server_default="power"),
        sa.Column("max_redemptions", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code_hash"),
        sa.CheckConstraint("max_redemptions > 0", name="ck_access_pass_max_positive"),
        sa.CheckConstraint(
            "redeemed_count >= 0 AND redeemed_count <= max_redemptions",
            name="ck_access_pass_redeemed_within_cap",
        ),
    )

    op.create_table(
        "access_pass_redemptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "access_pass_code_id", sa.Uuid(),
            sa.ForeignKey("access_pass_codes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "profile_id", sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("access_pass_code_id", "profile_id", name="uq_access_pass_redemption"),
    )


def downgrade() -> None:
    op.drop_table("access_pass_redemptions")
    op.drop_table("access_pass_codes")
    op.drop_index("ix_family_memberships_primary_parent_id", table_name="family_memberships")
    op.drop_index("ix_family_memberships_member_id", table_name="family_memberships")
    op.drop_table("family_memberships")
    op.drop_index("uq_invitations_pending", table_name="invitations")
    op.drop_table("invitations")
    op.drop_table("child_permissions")
    op.drop_table("profiles")
