"""Integration tests for access-code redemption and the admin endpoints."""


async def _create(client, headers, **body):
    body.setdefault("label", "Launch promo")
    body.setdefault("access_reason", "Promoter")
    body.setdefault("audience_tag", "promoter")
    return await client.post("/api/v1/admin/access-codes", headers=headers, json=body)


class TestAdminEndpoints:
    async def test_non_admin_is_forbidden(self, client, make_profile, auth_headers):
        p1 = await make_profile()
        resp = await _create(client, auth_headers(p1))
        assert resp.status_code == 403

    async def test_create_returns_raw_code_once(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        resp = await _create(client, auth_headers(admin), max_redemptions=10)

        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["code"].startswith("CP-")
        assert data["max_redemptions"] == 10
        assert data["redeemed_count"] == 0

        listed = await client.get("/api/v1/admin/access-codes", headers=auth_headers(admin))
        assert listed.status_code == 200
        assert "code" not in listed.json()[0]
        assert listed.json()[0]["code_preview"] == data["code_preview"]

    async def test_zero_redemptions_rejected(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        resp = await _create(client, auth_headers(admin), max_redemptions=0)
        assert resp.status_code == 422

    async def test_deactivate(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        created = (await _create(client, auth_headers(admin))).json()

        resp = await client.delete(f"/api/v1/admin/access-codes/{created['id']}", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["active"] is False

        reactivated = await client.patch(
            f"/api/v1/admin/access-codes/{created['id']}",
            headers=auth_headers(admin),
            json={"active": True},
        )
        assert reactivated.json()["active"] is True


class TestRedeemEndpoint:
    async def test_redeem_and_repeat(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        user = await make_profile()
        raw = (await _create(client, auth_headers(admin), max_redemptions=2)).json()["code"]

        resp = await client.post("/api/v1/access-codes/redeem", headers=auth_headers(user), json={"code": raw})
        assert resp.status_code == 200, resp.text
        assert resp.json() == {
            "granted": "power",
            "reason": "Promoter",
            "label": "Launch promo",
            "already_redeemed": False,
        }

        again = await client.post("/api/v1/access-codes/redeem", headers=auth_headers(user), json={"code": raw})
        assert again.status_code == 200
        assert again.json()["already_redeemed"] is True

        me = await client.get("/api/v1/profiles/me", headers=auth_headers(user))
        assert me.json()["free_premium_access"] is True
        assert me.json()["subscription_tier"] == "power"

    async def test_exhausted(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        first = await make_profile()
        second = await make_profile()
        raw = (await _create(client, auth_headers(admin), max_redemptions=1)).json()["code"]

        ok = await client.post("/api/v1/access-codes/redeem", headers=auth_headers(first), json={"code": raw})
        assert ok.status_code == 200

        resp = await client.post("/api/v1/access-codes/redeem", headers=auth_headers(second), json={"code": raw})
        assert resp.status_code == 409
        assert resp.json()["code"] == "exhausted"

        me = await client.get("/api/v1/profiles/me", headers=auth_headers(second))
        assert me.json()["free_premium_access"] is False

    async def test_unknown_code(self, client, make_profile, auth_headers):
        user = await make_profile()
        resp = await client.post(
            "/api/v1/access-codes/redeem", headers=auth_headers(user), json={"code": "CP-NOPE00-NOPE00"},
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "invalid"

    async def test_inactive_code(self, client, make_profile, auth_headers):
        admin = await make_profile(is_admin=True)
        user = await make_profile()
        created = (await _create(client, auth_headers(admin))).json()
        await client.delete(f"/api/v1/admin/access-codes/{created['id']}", headers=auth_headers(admin))

        resp = await client.post(
            "/api/v1/access-codes/redeem", headers=auth_headers(user), json={"code": created["code"]},
        )
        assert resp.status_code == 410
        assert resp.json()["code"] == "inactive"
