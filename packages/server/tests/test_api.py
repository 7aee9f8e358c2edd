"""
End-to-end API tests over the ASGI app: registration, join approval, org
access, quotas, catalogue management and the error envelope.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from app.services.memberships import JOIN_SUBMITTED, ORG_CREATED

API = "/api/v1"


@pytest.fixture
def bob_h(auth_headers):
    return auth_headers("bob@acme.com", name="Bob")


@pytest.fixture
def carol_h(auth_headers):
    return auth_headers("carol@acme.com", name="Carol")


@pytest.fixture
def root_h(auth_headers):
    return auth_headers("root@tenantgate.io", role="platform_admin")


@pytest.fixture
async def acme(client: AsyncClient, bob_h):
    resp = await client.post(f"{API}/users/register", json={"name": "Bob"}, headers=bob_h)
    assert resp.status_code == 200
    return resp.json()


@pytest.fixture
async def acme_with_carol(client: AsyncClient, acme, bob_h, carol_h):
    await client.post(f"{API}/users/register", json={"name": "Carol"}, headers=carol_h)
    resp = await client.post(
        f"{API}/users/approve-join/carol@acme.com:acme_com", json={}, headers=bob_h
    )
    assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Authentication and error envelope
# ---------------------------------------------------------------------------

class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{API}/users/me")
        assert resp.status_code == 401
        assert resp.json() == {
            "error": {
                "code": "invalid_token",
                "message": "Authentication required",
                "status": 401,
                "context": None,
            }
        }

    @pytest.mark.asyncio
    async def test_bad_token(self, client: AsyncClient):
        resp = await client.get(f"{API}/users/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    @pytest.mark.asyncio
    async def test_unregistered_me(self, client: AsyncClient, bob_h):
        resp = await client.get(f"{API}/users/me", headers=bob_h)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "user_not_found"


# ---------------------------------------------------------------------------
# Registration and join workflow
# ---------------------------------------------------------------------------

class TestRegistration:
    @pytest.mark.asyncio
    async def test_first_user_creates_org(self, acme):
        assert acme == {"message": ORG_CREATED, "client_name": "acme_com", "joined": True}

    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/users/me", headers=bob_h)
        assert resp.status_code == 200
        body = resp.json()
        assert body["client_name"] == "acme_com"
        assert body["role"] == "admin"
        assert body["status"] == "active"
        assert body["user_id"] == "bob-sub"

    @pytest.mark.asyncio
    async def test_second_user_joins(self, client: AsyncClient, acme, carol_h):
        resp = await client.post(f"{API}/users/register", json={"name": "Carol"}, headers=carol_h)
        assert resp.json() == {"message": JOIN_SUBMITTED, "client_name": "acme_com", "joined": False}

    @pytest.mark.asyncio
    async def test_generic_domain(self, client: AsyncClient, auth_headers):
        resp = await client.post(
            f"{API}/users/register", json={"name": "Dan"}, headers=auth_headers("dan@gmail.com")
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_email_domain"
        assert error["context"]["domain"] == "gmail.com"

    @pytest.mark.asyncio
    async def test_legal_entity_requires_role(self, client: AsyncClient, auth_headers):
        resp = await client.post(
            f"{API}/users/register/legal-entity",
            json={"name": "Lead"},
            headers=auth_headers("lead@lecorp.com"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_approval_flow(self, client: AsyncClient, acme, bob_h, carol_h):
        await client.post(f"{API}/users/register", json={"name": "Carol"}, headers=carol_h)

        resp = await client.get(f"{API}/users/join-requests", params={"org": "acme_com"}, headers=bob_h)
        assert resp.status_code == 200
        pending = resp.json()["data"]
        assert [p["join_id"] for p in pending] == ["carol@acme.com:acme_com"]
        assert pending[0]["client_name"] == "acme_com"

        # Pending members cannot see the org yet.
        resp = await client.get(f"{API}/orgs/acme_com", headers=carol_h)
        assert resp.status_code == 403

        resp = await client.post(
            f"{API}/users/approve-join/carol@acme.com:acme_com", json={"role": "viewer"}, headers=bob_h
        )
        assert resp.json() == {"approved": True, "assigned_role": "viewer"}

        resp = await client.get(f"{API}/orgs/acme_com", headers=carol_h)
        assert resp.status_code == 200
        assert resp.json()["viewers"] == ["carol-sub"]

        resp = await client.get(f"{API}/users/join-requests", params={"org": "acme_com"}, headers=bob_h)
        assert resp.json()["data"] == []

    @pytest.mark.asyncio
    async def test_viewer_cannot_approve(self, client: AsyncClient, acme_with_carol, carol_h, auth_headers):
        await client.post(
            f"{API}/users/register", json={"name": "Dave"}, headers=auth_headers("dave@acme.com")
        )
        resp = await client.post(
            f"{API}/users/approve-join/dave@acme.com:acme_com", json={}, headers=carol_h
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["context"] == {
            "capability": "administer_org",
            "tenant_key": "acme_com",
        }

    @pytest.mark.asyncio
    async def test_reject_unknown(self, client: AsyncClient, acme, bob_h):
        resp = await client.post(f"{API}/users/reject-join/ghost@acme.com:acme_com", headers=bob_h)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "join_request_not_found"

    @pytest.mark.asyncio
    async def test_rejected_request_cannot_be_approved(self, client: AsyncClient, acme, bob_h, carol_h):
        await client.post(f"{API}/users/register", json={"name": "Carol"}, headers=carol_h)
        resp = await client.post(f"{API}/users/reject-join/carol@acme.com:acme_com", headers=bob_h)
        assert resp.status_code == 200

        resp = await client.post(
            f"{API}/users/approve-join/carol@acme.com:acme_com", json={"role": "admin"}, headers=bob_h
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "membership_conflict"

        resp = await client.get(f"{API}/orgs/acme_com", headers=carol_h)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_join_by_domain(self, client: AsyncClient, acme, auth_headers):
        resp = await client.post(
            f"{API}/users/join-request",
            json={"org_domain": "acme.com", "message": "Let me in"},
            headers=auth_headers("erin@contractor.io"),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "message": "Join request sent",
            "client_name": "acme_com",
            "join_id": "erin@contractor.io:acme_com",
        }


class TestMemberManagement:
    @pytest.mark.asyncio
    async def test_role_change_and_removal(self, client: AsyncClient, acme_with_carol, bob_h, carol_h):
        resp = await client.patch(
            f"{API}/users/role/carol@acme.com", params={"org": "acme_com"}, json={"role": "admin"}, headers=bob_h
        )
        assert resp.json() == {"updated": True, "role": "admin"}

        resp = await client.get(f"{API}/users/admin-orgs", headers=carol_h)
        assert [o["tenant_key"] for o in resp.json()["data"]] == ["acme_com"]

        resp = await client.delete(
            f"{API}/users/remove/carol@acme.com", params={"org": "acme_com"}, headers=bob_h
        )
        assert resp.json() == {"removed": True}
        resp = await client.get(f"{API}/users/me", headers=carol_h)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_last_admin_protected(self, client: AsyncClient, acme, bob_h):
        resp = await client.delete(f"{API}/users/remove/bob@acme.com", params={"org": "acme_com"}, headers=bob_h)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "membership_conflict"

    @pytest.mark.asyncio
    async def test_invite(self, client: AsyncClient, acme, bob_h):
        resp = await client.post(
            f"{API}/users/invite",
            json={"email": "frank@acme.com", "name": "Frank", "org_name": "acme_com"},
            headers=bob_h,
        )
        assert resp.status_code == 201
        assert resp.json() == {"invited": True}


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class TestOrganizations:
    @pytest.mark.asyncio
    async def test_list_and_switch(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/orgs", headers=bob_h)
        assert [o["tenant_key"] for o in resp.json()["data"]] == ["acme_com"]

        resp = await client.get(f"{API}/orgs/switch/acme_com", headers=bob_h)
        assert resp.json() == {"switched_to": "acme_com"}

    @pytest.mark.asyncio
    async def test_update_profile(self, client: AsyncClient, acme, bob_h):
        resp = await client.patch(
            f"{API}/orgs/acme_com",
            json={"sector": "Finance", "profile_data": {"ism": {"score": 3}}},
            headers=bob_h,
        )
        assert resp.json() == {"updated": True}

        org = (await client.get(f"{API}/orgs/acme_com", headers=bob_h)).json()
        assert org["sector"] == "Finance"
        assert org["profile_data"] == {"ism": {"score": 3}}

    @pytest.mark.asyncio
    async def test_create_additional_org(self, client: AsyncClient, acme, bob_h):
        resp = await client.post(
            f"{API}/orgs", json={"org_name": "Globex", "org_domain": "globex.com"}, headers=bob_h
        )
        assert resp.status_code == 201
        assert resp.json() == {"client_name": "globex_com"}

        resp = await client.post(
            f"{API}/orgs", json={"org_name": "Globex", "org_domain": "globex.com"}, headers=bob_h
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_org(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/orgs/ghost_com", headers=bob_h)
        assert resp.status_code == 404
        assert resp.json()["error"]["context"] == {"tenant_key": "ghost_com"}

    @pytest.mark.asyncio
    async def test_platform_admin_endpoints(self, client: AsyncClient, acme, bob_h, root_h):
        assert (await client.get(f"{API}/orgs/all", headers=bob_h)).status_code == 403

        resp = await client.get(f"{API}/orgs/all", headers=root_h)
        assert [o["tenant_key"] for o in resp.json()["data"]] == ["acme_com"]

        resp = await client.delete(f"{API}/orgs/acme_com", headers=root_h)
        assert resp.json() == {"deleted": True, "client_name": "acme_com"}
        assert (await client.get(f"{API}/orgs/acme_com", headers=root_h)).status_code == 404


# ---------------------------------------------------------------------------
# Subscriptions and quotas
# ---------------------------------------------------------------------------

class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_get(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/subscriptions/acme_com", headers=bob_h)
        assert resp.status_code == 200
        body = resp.json()
        assert body["client_name"] == "acme_com"
        assert body["subscription_level"] == "L0"
        assert body["run_quota"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_create(self, client: AsyncClient, acme, bob_h):
        resp = await client.post(
            f"{API}/subscriptions", json={"client_name": "acme_com", "tier": "L1"}, headers=bob_h
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_subscription"

    @pytest.mark.asyncio
    async def test_only_platform_admin_changes_tier(self, client: AsyncClient, acme, bob_h):
        resp = await client.patch(f"{API}/subscriptions/acme_com", json={"tier": "L3"}, headers=bob_h)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_run_quota(self, client: AsyncClient, acme, bob_h, root_h):
        resp = await client.patch(
            f"{API}/subscriptions/acme_com", json={"tier": "L2", "payment_status": "paid"}, headers=root_h
        )
        assert resp.status_code == 200
        assert resp.json()["run_quota"] == 2
        assert resp.json()["payment_status"] == "paid"

        for used in (1, 2):
            resp = await client.post(f"{API}/subscriptions/acme_com/usage/run", headers=bob_h)
            assert resp.json() == {"client_name": "acme_com", "action": "run", "used": used, "limit": 2}

        resp = await client.post(f"{API}/subscriptions/acme_com/usage/run", headers=bob_h)
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["code"] == "quota_exceeded"
        assert error["context"]["limit_name"] == "run_quota"

        resp = await client.get(f"{API}/subscriptions/acme_com/usage/run", headers=bob_h)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_usage_check_under_limit(self, client: AsyncClient, acme, bob_h, root_h):
        await client.patch(f"{API}/subscriptions/acme_com", json={"tier": "L3"}, headers=root_h)
        resp = await client.get(f"{API}/subscriptions/acme_com/usage/addApp", headers=bob_h)
        assert resp.json() == {"client_name": "acme_com", "action": "addApp", "used": 0, "limit": 5}

    @pytest.mark.asyncio
    async def test_unknown_action(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/subscriptions/acme_com/usage/delete", headers=bob_h)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_features(self, client: AsyncClient, acme, bob_h):
        resp = await client.get(f"{API}/subscriptions/acme_com/features/ISM", headers=bob_h)
        assert resp.json() == {"client_name": "acme_com", "feature": "ISM", "allowed": False}

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, client: AsyncClient, acme, auth_headers):
        resp = await client.get(
            f"{API}/subscriptions/acme_com", headers=auth_headers("eve@evil.com")
        )
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

class TestCatalog:
    @pytest.mark.asyncio
    async def test_list_tiers(self, client: AsyncClient, bob_h):
        resp = await client.get(f"{API}/tiers", headers=bob_h)
        assert [t["sub_level"] for t in resp.json()["data"]] == ["L0", "L1", "L2", "L3", "LE"]

    @pytest.mark.asyncio
    async def test_tier_writes_need_platform_admin(self, client: AsyncClient, bob_h, root_h):
        tier = {"sub_level": "L4", "name": "Custom", "max_apps": 20}
        assert (await client.post(f"{API}/tiers", json=tier, headers=bob_h)).status_code == 403

        resp = await client.post(f"{API}/tiers", json=tier, headers=root_h)
        assert resp.json() == {"saved": True, "sub_level": "L4"}
        resp = await client.get(f"{API}/tiers/L4", headers=bob_h)
        assert resp.json()["max_apps"] == 20

        resp = await client.delete(f"{API}/tiers/L4", headers=root_h)
        assert resp.json() == {"deleted": True, "sub_level": "L4"}
        assert (await client.get(f"{API}/tiers/L4", headers=bob_h)).status_code == 404

    @pytest.mark.asyncio
    async def test_roles(self, client: AsyncClient, bob_h, root_h):
        role = {"role_id": "auditor", "name": "Auditor", "permissions": ["GET /orgs"]}
        resp = await client.post(f"{API}/roles", json=role, headers=root_h)
        assert resp.json() == {"saved": True, "role_id": "auditor"}

        resp = await client.get(f"{API}/roles", headers=bob_h)
        assert resp.json()["data"] == [{**role, "description": None}]

        assert (await client.get(f"{API}/roles/ghost", headers=bob_h)).status_code == 404
