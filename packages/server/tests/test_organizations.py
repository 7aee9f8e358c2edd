"""
Organization service tests: provisioning, profile updates, listing, switching
and cascading deletion.
"""

from __future__ import annotations

import pytest

from app.core.auth import load_caller
from app.core.errors import DuplicateOrganization, Forbidden, OrganizationNotFound
from app.models.membership import JoinRequest, UserMembership
from app.models.organization import Organization
from app.models.subscription import Subscription
from app.services import memberships
from app.services import organizations as svc
from tenantgate_shared.schemas.organizations import (
    LeOrgCreateRequest,
    OrgCreateRequest,
    OrgUpdateRequest,
)


async def _register(storage, settings, identity, **kwargs):
    return await memberships.register_or_join(
        storage, settings, email=identity.email, name="User", creator=identity, **kwargs
    )


@pytest.fixture
def bob(make_identity):
    return make_identity("bob@acme.com")


@pytest.fixture
async def acme(storage, settings, bob):
    await _register(storage, settings, bob)
    return await svc.get_org(storage, "acme_com")


@pytest.fixture
def lead(make_identity):
    return make_identity("lead@lecorp.com", role="LE_ADMIN")


@pytest.fixture
async def lecorp(storage, settings, lead):
    await _register(storage, settings, lead, legal_entity=True)
    return await svc.get_org(storage, "lecorp_com")


class TestDeepMerge:
    def test_deep_merge(self):
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        patch = {"a": {"b": 10}, "e": 5}
        result = svc._deep_merge(base, patch)
        assert result == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_base_untouched(self):
        base = {"a": {"b": 1}}
        svc._deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestProvision:
    @pytest.mark.asyncio
    async def test_creates_org_and_subscription(self, storage):
        org = await svc.provision_organization(
            storage,
            tenant_key="initech_com",
            organization_name="initech.com",
            admin_id="peter-sub",
            owner_email="peter@initech.com",
        )
        assert org.admins == ["peter-sub"]
        assert org.viewers == []
        assert org.org_type == "standard"
        sub = await storage.get(Subscription, "initech_com")
        assert sub.subscription_level == "L0"

    @pytest.mark.asyncio
    async def test_duplicate(self, storage, acme):
        with pytest.raises(DuplicateOrganization):
            await svc.provision_organization(
                storage,
                tenant_key="acme_com",
                organization_name="acme.com",
                admin_id="x",
                owner_email=None,
            )

    @pytest.mark.asyncio
    async def test_get_missing(self, storage):
        with pytest.raises(OrganizationNotFound):
            await svc.get_org(storage, "ghost_com")


class TestCreateOrg:
    @pytest.mark.asyncio
    async def test_admin_creates_additional_org(self, storage, settings, acme, bob):
        caller = await load_caller(bob, storage)
        req = OrgCreateRequest(org_name="Globex", org_domain="Globex.com", sector="Energy")
        org = await svc.create_org(storage, settings, req, caller)

        assert org.tenant_key == "globex_com"
        assert org.organization_name == "Globex"
        assert org.admins == ["bob-sub"]
        assert org.sector == "Energy"
        assert (await storage.get(Subscription, "globex_com")).subscription_level == "L0"

    @pytest.mark.asyncio
    async def test_requires_admin_membership(self, storage, settings, make_identity):
        caller = await load_caller(make_identity("nobody@nowhere.com"), storage)
        req = OrgCreateRequest(org_name="Globex", org_domain="globex.com")
        with pytest.raises(Forbidden):
            await svc.create_org(storage, settings, req, caller)

    @pytest.mark.asyncio
    async def test_invalid_domain_rejected_by_schema(self):
        with pytest.raises(ValueError):
            OrgCreateRequest(org_name="Bad", org_domain="not a domain")


class TestCreateLeOrg:
    @pytest.mark.asyncio
    async def test_legal_entity_admin(self, storage, settings, lecorp, lead):
        caller = await load_caller(lead, storage)
        assert caller.subscription_level == "LE"

        req = LeOrgCreateRequest(org_name="Client", org_domain="client.org")
        org = await svc.create_le_org(storage, settings, req, caller)

        assert org.tenant_key == "LE_lecorp_com_client_org"
        assert org.org_type == "le_org"
        assert org.le_master == "lead-sub"
        sub = await storage.get(Subscription, org.tenant_key)
        assert sub.subscription_level == "LE"
        assert sub.run_quota is None

    @pytest.mark.asyncio
    async def test_standard_admin_forbidden(self, storage, settings, acme, bob):
        caller = await load_caller(bob, storage)
        req = LeOrgCreateRequest(org_name="Client", org_domain="client.org")
        with pytest.raises(Forbidden):
            await svc.create_le_org(storage, settings, req, caller)


class TestUpdateOrg:
    @pytest.mark.asyncio
    async def test_profile_fields(self, storage, settings, acme, bob):
        req = OrgUpdateRequest(sector="Finance", countries_of_operation=["AU", "NZ"])
        org = await svc.update_org(storage, settings, "acme_com", req, bob)
        assert org.sector == "Finance"
        assert org.countries_of_operation == ["AU", "NZ"]

    @pytest.mark.asyncio
    async def test_null_countries_clears_list(self, storage, settings, acme, bob):
        await svc.update_org(
            storage, settings, "acme_com", OrgUpdateRequest(countries_of_operation=["AU"]), bob
        )
        org = await svc.update_org(
            storage, settings, "acme_com", OrgUpdateRequest(countries_of_operation=None), bob
        )
        assert org.countries_of_operation == []

    @pytest.mark.asyncio
    async def test_profile_data_merged(self, storage, settings, acme, bob):
        await svc.update_org(
            storage, settings, "acme_com", OrgUpdateRequest(profile_data={"ism": {"a": 1, "b": 2}}), bob
        )
        org = await svc.update_org(
            storage, settings, "acme_com", OrgUpdateRequest(profile_data={"ism": {"b": 3}}), bob
        )
        assert org.profile_data == {"ism": {"a": 1, "b": 3}}

    @pytest.mark.asyncio
    async def test_empty_update_is_noop(self, storage, settings, acme, bob):
        org = await svc.update_org(storage, settings, "acme_com", OrgUpdateRequest(), bob)
        assert org.tenant_key == "acme_com"

    @pytest.mark.asyncio
    async def test_viewer_forbidden(self, storage, settings, acme, make_identity):
        await storage.update(Organization, "acme_com", {"viewers": ["carol-sub"]})
        with pytest.raises(Forbidden):
            await svc.update_org(
                storage, settings, "acme_com", OrgUpdateRequest(sector="x"), make_identity("carol@acme.com")
            )

    @pytest.mark.asyncio
    async def test_platform_admin_override(self, storage, settings, acme, make_identity):
        root = make_identity("root@tenantgate.io", role="platform_admin")
        org = await svc.update_org(storage, settings, "acme_com", OrgUpdateRequest(sector="Gov"), root)
        assert org.sector == "Gov"


class TestListAndSwitch:
    @pytest.mark.asyncio
    async def test_lists_admin_and_viewer_orgs(self, storage, settings, acme, bob):
        await svc.provision_organization(
            storage,
            tenant_key="globex_com",
            organization_name="globex.com",
            admin_id="hank-sub",
            owner_email="hank@globex.com",
        )
        await storage.update(Organization, "globex_com", {"viewers": ["bob-sub"]})

        caller = await load_caller(bob, storage)
        orgs = await svc.list_user_orgs(storage, caller)
        assert sorted(o.tenant_key for o in orgs) == ["acme_com", "globex_com"]

    @pytest.mark.asyncio
    async def test_email_listed_admin_sees_and_switches(self, storage, settings, make_identity):
        await svc.provision_organization(
            storage,
            tenant_key="globex_com",
            organization_name="globex.com",
            admin_id="hank@globex.com",
            owner_email="hank@globex.com",
        )
        caller = await load_caller(make_identity("hank@globex.com"), storage)
        assert [o.tenant_key for o in await svc.list_user_orgs(storage, caller)] == ["globex_com"]
        assert await svc.switch_org(storage, settings, "globex_com", caller) == "globex_com"

    @pytest.mark.asyncio
    async def test_legal_entity_lists_mastered_orgs(self, storage, settings, lecorp, lead):
        caller = await load_caller(lead, storage)
        await svc.create_le_org(
            storage, settings, LeOrgCreateRequest(org_name="Client", org_domain="client.org"), caller
        )
        orgs = await svc.list_user_orgs(storage, caller)
        assert sorted(o.tenant_key for o in orgs) == ["LE_lecorp_com_client_org", "lecorp_com"]

    @pytest.mark.asyncio
    async def test_switch(self, storage, settings, acme, bob):
        caller = await load_caller(bob, storage)
        assert await svc.switch_org(storage, settings, "acme_com", caller) == "acme_com"

    @pytest.mark.asyncio
    async def test_switch_pending_member_forbidden(self, storage, settings, acme, make_identity):
        carol = make_identity("carol@acme.com")
        await _register(storage, settings, carol)
        caller = await load_caller(carol, storage)
        with pytest.raises(Forbidden):
            await svc.switch_org(storage, settings, "acme_com", caller)

    @pytest.mark.asyncio
    async def test_legal_entity_switch_needs_mastery(self, storage, settings, acme, lecorp, lead):
        caller = await load_caller(lead, storage)
        assert await svc.switch_org(storage, settings, "lecorp_com", caller) == "lecorp_com"
        with pytest.raises(Forbidden):
            await svc.switch_org(storage, settings, "acme_com", caller)

    @pytest.mark.asyncio
    async def test_list_all(self, storage, settings, acme, lecorp):
        assert [o.tenant_key for o in await svc.list_all_orgs(storage)] == ["acme_com", "lecorp_com"]


class TestDeleteOrg:
    @pytest.mark.asyncio
    async def test_cascades(self, storage, settings, acme, make_identity):
        await _register(storage, settings, make_identity("carol@acme.com"))
        assert await storage.get(JoinRequest, "carol@acme.com:acme_com") is not None

        await svc.delete_org(storage, "acme_com")

        assert await storage.get(Organization, "acme_com") is None
        assert await storage.get(Subscription, "acme_com") is None
        assert await storage.get(JoinRequest, "carol@acme.com:acme_com") is None
        assert await storage.find(UserMembership, tenant_key="acme_com") == []

    @pytest.mark.asyncio
    async def test_missing(self, storage):
        with pytest.raises(OrganizationNotFound):
            await svc.delete_org(storage, "ghost_com")
