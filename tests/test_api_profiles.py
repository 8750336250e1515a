"""Integration tests for /api/v1/profiles and /api/v1/family."""

import uuid

from coparent.core.security import create_access_token
from coparent.models.family import FamilyMembership
from coparent.models.profile import ChildPermission


async def _link(db, a, b):
    a.co_parent_id = b.id
    b.co_parent_id = a.id
    await db.flush()


class TestProfiles:
    async def test_me_provisions_profile(self, client):
        token = create_access_token({"sub": str(uuid.uuid4()), "email": "Fresh@Example.com", "name": "Fresh"})
        resp = await client.get("/api/v1/profiles/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "fresh@example.com"
        assert data["display_name"] == "Fresh"
        assert data["account_role"] == "parent"
        assert data["subscription_tier"] == "free"

    async def test_invalid_token(self, client):
        resp = await client.get("/api/v1/profiles/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    async def test_my_capabilities(self, client, make_profile, auth_headers):
        p1 = await make_profile()
        resp = await client.get("/api/v1/profiles/me/capabilities", headers=auth_headers(p1))
        assert resp.status_code == 200
        data = resp.json()
        assert data["effective_role"] == "parent"
        assert data["can_invite_co_parent"] is True
        assert data["can_invite_third_party"] is False

    async def test_co_parent_can_read_capabilities(self, client, db_session, make_profile, auth_headers):
        p1 = await make_profile()
        p2 = await make_profile()
        await _link(db_session, p1, p2)

        resp = await client.get(f"/api/v1/profiles/{p2.id}/capabilities", headers=auth_headers(p1))
        assert resp.status_code == 200
        assert resp.json()["is_co_parent_linked"] is True

    async def test_stranger_cannot_read_capabilities(self, client, make_profile, auth_headers):
        p1 = await make_profile()
        stranger = await make_profile()
        resp = await client.get(f"/api/v1/profiles/{p1.id}/capabilities", headers=auth_headers(stranger))
        assert resp.status_code == 403

    async def test_parent_reads_child_capabilities(self, client, db_session, make_profile, auth_headers):
        p1 = await make_profile()
        child = await make_profile(account_role="child")
        db_session.add(ChildPermission(child_profile_id=child.id, parent_profile_id=p1.id))
        await db_session.flush()

        resp = await client.get(f"/api/v1/profiles/{child.id}/capabilities", headers=auth_headers(p1))
        assert resp.status_code == 200
        assert resp.json()["can_manage_documents"] is False


class TestChildPermissions:
    async def test_co_parent_updates_child_permissions(
        self, client, db_session, make_profile, auth_headers,
    ):
        p1 = await make_profile()
        p2 = await make_profile()
        await _link(db_session, p1, p2)
        child = await make_profile(account_role="child")
        db_session.add(ChildPermission(child_profile_id=child.id, parent_profile_id=p1.id))
        await db_session.flush()

        resp = await client.put(
            f"/api/v1/profiles/children/{child.id}/permissions",
            headers=auth_headers(p2),
            json={"allow_mood_checkins": True, "show_full_event_details": True},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["allow_mood_checkins"] is True
        assert resp.json()["allow_parent_messaging"] is True

        caps = await client.get("/api/v1/profiles/me/capabilities", headers=auth_headers(child))
        assert caps.json()["can_submit_mood_checkins"] is True
        assert caps.json()["can_view_full_calendar"] is True

    async def test_stranger_cannot_update(self, client, db_session, make_profile, auth_headers):
        p1 = await make_profile()
        stranger = await make_profile()
        child = await make_profile(account_role="child")
        db_session.add(ChildPermission(child_profile_id=child.id, parent_profile_id=p1.id))
        await db_session.flush()

        resp = await client.put(
            f"/api/v1/profiles/children/{child.id}/permissions",
            headers=auth_headers(stranger),
            json={"allow_family_chat": True},
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "not_permitted"

    async def test_unknown_child(self, client, make_profile, auth_headers):
        p1 = await make_profile()
        resp = await client.put(
            f"/api/v1/profiles/children/{uuid.uuid4()}/permissions",
            headers=auth_headers(p1),
            json={"allow_family_chat": True},
        )
        assert resp.status_code == 404


class TestFamily:
    async def _family_with_member(self, db_session, make_profile, premium_fields):
        p1 = await make_profile(id=uuid.UUID(int=1), **premium_fields)
        p2 = await make_profile(id=uuid.UUID(int=2))
        await _link(db_session, p1, p2)
        member = await make_profile(account_role="third_party")
        membership = FamilyMembership(
            member_id=member.id,
            primary_parent_id=p1.id,
            invited_by=p2.id,
            relationship="grandparent",
            status="active",
        )
        db_session.add(membership)
        await db_session.flush()
        return p1, p2, member, membership

    async def test_parent_sees_members(self, client, db_session, make_profile, auth_headers, premium_fields):
        p1, p2, member, membership = await self._family_with_member(db_session, make_profile, premium_fields)

        resp = await client.get("/api/v1/family", headers=auth_headers(p2))
        assert resp.status_code == 200
        data = resp.json()
        assert data["primary_parent_id"] == str(p1.id)
        assert {p["id"] for p in data["parents"]} == {str(p1.id), str(p2.id)}
        assert [m["member_id"] for m in data["members"]] == [str(member.id)]

    async def test_member_sees_parents_only(
        self, client, db_session, make_profile, auth_headers, premium_fields,
    ):
        p1, p2, member, _ = await self._family_with_member(db_session, make_profile, premium_fields)

        resp = await client.get("/api/v1/family", headers=auth_headers(member))
        assert resp.status_code == 200
        assert len(resp.json()["parents"]) == 2
        assert resp.json()["members"] == []

    async def test_remove_member_revokes_access(
        self, client, db_session, make_profile, auth_headers, premium_fields,
    ):
        p1, p2, member, membership = await self._family_with_member(db_session, make_profile, premium_fields)

        resp = await client.delete(f"/api/v1/family/members/{membership.id}", headers=auth_headers(p2))
        assert resp.status_code == 200
        assert resp.json()["status"] == "revoked"

        caps = await client.get("/api/v1/profiles/me/capabilities", headers=auth_headers(member))
        assert caps.json()["effective_role"] == "parent"

        # Back in a family of their own, no longer in the old one
        family = await client.get("/api/v1/family", headers=auth_headers(member))
        assert family.status_code == 200
        assert family.json()["primary_parent_id"] == str(member.id)

        listed = await client.get("/api/v1/family", headers=auth_headers(p1))
        assert listed.json()["members"] == []

    async def test_other_family_cannot_remove(
        self, client, db_session, make_profile, auth_headers, premium_fields,
    ):
        _, _, _, membership = await self._family_with_member(db_session, make_profile, premium_fields)
        stranger = await make_profile()

        resp = await client.delete(f"/api/v1/family/members/{membership.id}", headers=auth_headers(stranger))
        assert resp.status_code == 403

    async def test_child_cannot_view_family(self, client, make_profile, auth_headers):
        child = await make_profile(account_role="child")
        resp = await client.get("/api/v1/family", headers=auth_headers(child))
        assert resp.status_code == 403
