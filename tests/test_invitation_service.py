"""Tests for invitation issuance and token resolution against the test DB."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from coparent.core.exceptions import (
    AlreadyConsumed,
    AlreadyLinked,
    DuplicateInvitation,
    Expired,
    InvalidRequest,
    NotFound,
    NotPermitted,
    PlanLimitReached,
)
from coparent.models.family import FamilyMembership
from coparent.models.invitation import Invitation
from coparent.schemas.profile import CallerIdentity
from coparent.services import invitation_service


def _identity(profile, email=None) -> CallerIdentity:
    return CallerIdentity(auth_user_id=profile.auth_user_id, email=email or profile.email)


class TestIssueInvitation:
    async def test_issue_co_parent_invitation(self, db_session, make_profile):
        p1 = await make_profile(email="p1@example.com")
        inv = await invitation_service.issue_invitation(db_session, p1, " A@Example.com ", "co_parent")

        assert inv.status == "pending"
        assert inv.invitee_email == "a@example.com"
        assert inv.inviter_id == p1.id
        assert len(inv.token) >= 43
        assert inv.expires_at - inv.created_at == timedelta(days=7)

    async def test_duplicate_pending_is_rejected(self, db_session, make_profile):
        p1 = await make_profile()
        first = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")

        with pytest.raises(DuplicateInvitation) as exc:
            await invitation_service.issue_invitation(db_session, p1, "A@EXAMPLE.COM", "co_parent")
        assert exc.value.to_dict()["invitation_id"] == str(first.id)

    async def test_expired_pending_is_superseded(self, db_session, make_profile, past):
        p1 = await make_profile()
        old = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        old.expires_at = past
        await db_session.flush()

        new = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        await db_session.refresh(old)

        assert old.status == "expired"
        assert new.id != old.id
        assert new.token != old.token

    async def test_self_invitation_rejected(self, db_session, make_profile):
        p1 = await make_profile(email="me@example.com")
        with pytest.raises(InvalidRequest):
            await invitation_service.issue_invitation(db_session, p1, "ME@example.com", "co_parent")

    async def test_unknown_type_rejected(self, db_session, make_profile):
        p1 = await make_profile()
        with pytest.raises(InvalidRequest):
            await invitation_service.issue_invitation(db_session, p1, "a@example.com", "nanny")

    async def test_linked_parent_cannot_invite_co_parent(self, db_session, make_profile):
        p1 = await make_profile()
        p2 = await make_profile(co_parent_id=p1.id)
        p1.co_parent_id = p2.id
        await db_session.flush()

        with pytest.raises(AlreadyLinked):
            await invitation_service.issue_invitation(db_session, p1, "x@example.com", "co_parent")

    async def test_child_cannot_invite(self, db_session, make_profile):
        child = await make_profile(account_role="child")
        with pytest.raises(NotPermitted):
            await invitation_service.issue_invitation(db_session, child, "x@example.com", "co_parent")

    async def test_free_plan_cannot_invite_third_party(self, db_session, make_profile):
        p1 = await make_profile()
        with pytest.raises(PlanLimitReached):
            await invitation_service.issue_invitation(
                db_session, p1, "c@example.com", "third_party", relationship="grandparent",
            )

    async def test_third_party_limit_counts_pending_invites(
        self, db_session, make_profile, premium_fields,
    ):
        p1 = await make_profile(**premium_fields)
        for i in range(6):
            await invitation_service.issue_invitation(
                db_session, p1, f"member{i}@example.com", "third_party", relationship="other",
            )

        with pytest.raises(PlanLimitReached) as exc:
            await invitation_service.issue_invitation(
                db_session, p1, "seventh@example.com", "third_party", relationship="other",
            )
        assert exc.value.extra["limit"] == 6

    async def test_co_parent_premium_unlocks_third_party(self, db_session, make_profile, premium_fields):
        payer = await make_profile(**premium_fields)
        free = await make_profile(co_parent_id=payer.id)
        payer.co_parent_id = free.id
        await db_session.flush()

        inv = await invitation_service.issue_invitation(
            db_session, free, "c@example.com", "third_party", relationship="babysitter",
            child_ids=[uuid.uuid4()],
        )
        assert inv.relationship == "babysitter"
        assert len(inv.child_ids) == 1


class TestResolveInvitation:
    async def test_unknown_token_is_invalid(self, db_session):
        res = await invitation_service.resolve_invitation(db_session, "no-such-token")
        assert res.status == "invalid"
        assert res.inviter_id is None

    async def test_missing_token_is_invalid(self, db_session):
        assert (await invitation_service.resolve_invitation(db_session, None)).status == "invalid"

    async def test_valid_token_returns_details(self, db_session, make_profile):
        p1 = await make_profile(name="Alice")
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")

        res = await invitation_service.resolve_invitation(db_session, inv.token)
        assert res.status == "valid"
        assert res.inviter_id == p1.id
        assert res.inviter_name == "Alice"
        assert res.invitation_type == "co_parent"

    async def test_lazy_expiry(self, db_session, make_profile, now):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent", now=now)

        later = now + timedelta(days=7, seconds=1)
        res = await invitation_service.resolve_invitation(db_session, inv.token, now=later)
        assert res.status == "expired"
        # Stored status is untouched by resolution
        assert inv.status == "pending"

    async def test_resolution_is_repeatable(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        first = await invitation_service.resolve_invitation(db_session, inv.token)
        second = await invitation_service.resolve_invitation(db_session, inv.token)
        assert first == second

    async def test_accepted_token(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        inv.status = "accepted"
        await db_session.flush()

        res = await invitation_service.resolve_invitation(db_session, inv.token)
        assert res.status == "already_accepted"

    async def test_revoked_token_reads_expired(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        await invitation_service.revoke_invitation(db_session, p1, inv.id)

        res = await invitation_service.resolve_invitation(db_session, inv.token)
        assert res.status == "expired"

    async def test_third_party_email_mismatch(self, db_session, make_profile, premium_fields):
        p1 = await make_profile(**premium_fields)
        other = await make_profile(email="mallory@example.com")
        inv = await invitation_service.issue_invitation(
            db_session, p1, "c@example.com", "third_party", relationship="grandparent",
        )

        res = await invitation_service.resolve_invitation(db_session, inv.token, _identity(other))
        assert res.status == "email_mismatch"

        count = await db_session.execute(select(func.count(FamilyMembership.id)))
        assert count.scalar() == 0

    async def test_third_party_email_match_is_case_insensitive(
        self, db_session, make_profile, premium_fields,
    ):
        p1 = await make_profile(**premium_fields)
        invitee = await make_profile(email="c@example.com")
        inv = await invitation_service.issue_invitation(
            db_session, p1, "c@example.com", "third_party", relationship="grandparent",
        )

        res = await invitation_service.resolve_invitation(
            db_session, inv.token, _identity(invitee, email="C@Example.COM"),
        )
        assert res.status == "valid"
        assert res.invitee_email == "c@example.com"

    async def test_anonymous_preview_skips_email_check(self, db_session, make_profile, premium_fields):
        p1 = await make_profile(**premium_fields)
        inv = await invitation_service.issue_invitation(
            db_session, p1, "c@example.com", "third_party", relationship="grandparent",
        )
        res = await invitation_service.resolve_invitation(db_session, inv.token, None)
        assert res.status == "valid"


class TestManageInvitations:
    async def test_list_applies_lazy_expiry(self, db_session, make_profile, past):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        inv.expires_at = past
        await db_session.flush()

        listed = await invitation_service.list_sent_invitations(db_session, p1)
        assert [i.status for i in listed] == ["expired"]

    async def test_revoke_twice_is_noop(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        await invitation_service.revoke_invitation(db_session, p1, inv.id)
        again = await invitation_service.revoke_invitation(db_session, p1, inv.id)
        assert again.status == "revoked"

    async def test_revoke_accepted_fails(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        inv.status = "accepted"
        await db_session.flush()

        with pytest.raises(AlreadyConsumed):
            await invitation_service.revoke_invitation(db_session, p1, inv.id)

    async def test_resend_expired_fails(self, db_session, make_profile, past):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        inv.expires_at = past
        await db_session.flush()

        with pytest.raises(Expired):
            await invitation_service.prepare_resend(db_session, p1, inv.id)

    async def test_other_inviter_cannot_see_invitation(self, db_session, make_profile):
        p1 = await make_profile()
        stranger = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")

        with pytest.raises(NotFound):
            await invitation_service.get_sent_invitation(db_session, stranger, inv.id)

    async def test_stored_row_keeps_token(self, db_session, make_profile):
        p1 = await make_profile()
        inv = await invitation_service.issue_invitation(db_session, p1, "a@example.com", "co_parent")
        result = await db_session.execute(select(Invitation.token).where(Invitation.id == inv.id))
        assert result.scalar_one() == inv.token
