"""
Organization service: provisioning, profile updates, listing and deletion.
"""

from __future__ import annotations

from typing import Optional

import structlog

from app.core.config import Settings
from app.core.errors import DuplicateOrganization, Forbidden, OrganizationNotFound
from app.core.identity import Caller, CallerIdentity
from app.core.storage import Contains, DuplicateRecord, Storage
from app.models.membership import JoinRequest, UserMembership
from app.models.organization import Organization
from app.models.subscription import Subscription
from app.services.authorization import authorize, member_ids, require, require_named_roles
from app.services.subscriptions import create_subscription
from app.services.tenants import resolve_legal_entity_tenant, tenant_key_from_domain
from tenantgate_shared.schemas.common import Capability, NamedRole, OrgType, TierCode
from tenantgate_shared.schemas.organizations import (
    LeOrgCreateRequest,
    OrgCreateRequest,
    OrgUpdateRequest,
)

log = structlog.get_logger()

PROFILE_FIELDS = (
    "sector",
    "website_url",
    "countries_of_operation",
    "home_url",
    "about_us_url",
    "additional_details",
)


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


async def provision_organization(
    storage: Storage,
    *,
    tenant_key: str,
    organization_name: str,
    admin_id: str,
    owner_email: Optional[str],
    tier: TierCode = TierCode.L0,
    org_type: OrgType = OrgType.STANDARD,
    le_master: Optional[str] = None,
    partner_code: Optional[str] = None,
    profile: Optional[dict] = None,
) -> Organization:
    """Create an Organization and its Subscription for a new tenant key.

    Raises DuplicateOrganization when the tenant key is taken.
    """
    org = Organization(
        tenant_key=tenant_key,
        organization_name=organization_name,
        org_type=org_type.value,
        owner_email=owner_email,
        created_by=admin_id,
        admins=[admin_id],
        viewers=[],
        le_master=le_master,
        partner_code=partner_code,
        **{k: v for k, v in (profile or {}).items() if v is not None},
    )
    try:
        org = await storage.insert(org)
    except DuplicateRecord as exc:
        raise DuplicateOrganization(
            "Organization already exists", tenant_key=tenant_key
        ) from exc

    await create_subscription(storage, tenant_key, tier.value)
    log.info("org.created", tenant_key=tenant_key, org_type=org_type.value, tier=tier.value)
    return org


async def get_org(storage: Storage, tenant_key: str) -> Organization:
    org = await storage.get(Organization, tenant_key)
    if org is None:
        raise OrganizationNotFound("Organization not found", tenant_key=tenant_key)
    return org


async def create_org(
    storage: Storage, settings: Settings, req: OrgCreateRequest, caller: Caller
) -> Organization:
    """Create an organization for an explicit domain; the caller becomes its admin."""
    require_named_roles(caller, [NamedRole.ADMIN])
    tenant_key = tenant_key_from_domain(req.org_domain)
    return await provision_organization(
        storage,
        tenant_key=tenant_key,
        organization_name=req.org_name,
        admin_id=caller.subject_id,
        owner_email=caller.email,
        partner_code=req.partner_code,
        profile=req.model_dump(include=set(PROFILE_FIELDS)),
    )


async def create_le_org(
    storage: Storage, settings: Settings, req: LeOrgCreateRequest, caller: Caller
) -> Organization:
    """Create an organization managed by the caller's legal entity."""
    require_named_roles(caller, [NamedRole.LE_ADMIN])
    tenant_key = resolve_legal_entity_tenant(caller.identity.domain, req.org_domain)
    return await provision_organization(
        storage,
        tenant_key=tenant_key,
        organization_name=req.org_name,
        admin_id=caller.subject_id,
        owner_email=caller.email,
        tier=TierCode.LE,
        org_type=OrgType.LE_ORG,
        le_master=caller.subject_id,
        partner_code=req.partner_code,
        profile=req.model_dump(include=set(PROFILE_FIELDS)),
    )


async def update_org(
    storage: Storage,
    settings: Settings,
    tenant_key: str,
    req: OrgUpdateRequest,
    identity: CallerIdentity,
) -> Organization:
    org = await get_org(storage, tenant_key)
    require(identity, org, Capability.ADMINISTER_ORG, settings)

    fields = req.model_dump(exclude_unset=True, exclude={"profile_data"})
    if "countries_of_operation" in fields and fields["countries_of_operation"] is None:
        fields["countries_of_operation"] = []
    if req.profile_data is not None:
        fields["profile_data"] = _deep_merge(org.profile_data or {}, req.profile_data)
    if not fields:
        return org

    updated = await storage.update(Organization, tenant_key, fields)
    if updated is None:
        raise OrganizationNotFound("Organization not found", tenant_key=tenant_key)
    log.info("org.updated", tenant_key=tenant_key, fields=sorted(fields))
    return updated


async def list_user_orgs(storage: Storage, caller: Caller) -> list[Organization]:
    """Organizations visible to the caller.

    Legal-entity callers see the organizations they master; everyone else sees
    the ones listing them as admin or viewer.
    """
    orgs: dict[str, Organization] = {}
    for member_id in sorted(member_ids(caller.identity)):
        if caller.subscription_level == TierCode.LE:
            matches = await storage.find(Organization, le_master=member_id)
        else:
            matches = await storage.find(Organization, admins=Contains(member_id))
            matches += await storage.find(Organization, viewers=Contains(member_id))
        for org in matches:
            orgs.setdefault(org.tenant_key, org)
    return list(orgs.values())


async def switch_org(storage: Storage, settings: Settings, tenant_key: str, caller: Caller) -> str:
    org = await get_org(storage, tenant_key)
    if caller.subscription_level == TierCode.LE:
        allowed = org.le_master in member_ids(caller.identity)
    else:
        allowed = authorize(caller.identity, org, Capability.VIEW_ORG, settings)
    if not allowed:
        raise Forbidden(
            "Not authorized for this org",
            tenant_key=tenant_key,
            capability=Capability.VIEW_ORG.value,
        )
    log.info("org.switched", tenant_key=tenant_key, email=caller.email)
    return tenant_key


async def list_all_orgs(storage: Storage) -> list[Organization]:
    return sorted(await storage.find(Organization), key=lambda o: o.created_at)


async def delete_org(storage: Storage, tenant_key: str) -> None:
    """Delete an organization with its subscription, join requests and memberships."""
    await get_org(storage, tenant_key)

    await storage.delete(Subscription, tenant_key)
    for join_request in await storage.find(JoinRequest, tenant_key=tenant_key):
        await storage.delete(JoinRequest, join_request.join_id)
    memberships = await storage.find(UserMembership, tenant_key=tenant_key)
    for membership in memberships:
        await storage.delete(UserMembership, membership.email)
    await storage.delete(Organization, tenant_key)

    log.info("org.deleted", tenant_key=tenant_key, memberships=len(memberships))
