"""
Membership service: registration, join requests, approvals and invites.

A user has exactly one membership (keyed by email). Joining an existing
organization leaves it ``pending_approval`` until an administrator approves
the paired join request; creating a new organization makes it ``active``
``admin`` immediately.
"""

from __future__ import annotations

from typing import Optional

import structlog

from app.core.config import Settings
from app.core.errors import (
    DuplicateOrganization,
    Forbidden,
    InvalidEmailDomain,
    JoinRequestNotFound,
    MembershipConflict,
    UserNotFound,
)
from app.core.identity import CallerIdentity
from app.core.storage import Contains, DuplicateRecord, Storage
from app.models.base import _utcnow
from app.models.membership import JoinRequest, UserMembership, join_id_for
from app.models.organization import Organization
from app.services.authorization import is_platform_admin, member_ids, require
from app.services.organizations import get_org, provision_organization
from app.services.tenants import (
    email_domain,
    is_generic_domain,
    resolve_tenant,
    tenant_key_from_domain,
)
from tenantgate_shared.schemas.common import (
    Capability,
    JoinStatus,
    MembershipRole,
    MembershipStatus,
    OrgType,
    TierCode,
)

log = structlog.get_logger()

ALREADY_REGISTERED = "User already registered with this organization"
JOIN_SUBMITTED = "Organization exists, join request submitted (pending approval)"
ORG_CREATED = "New organization and user registered as admin"
JOIN_SENT = "Join request sent"


# ---------------------------------------------------------------------------
# Organization admin/viewer sets
# ---------------------------------------------------------------------------

async def _assign_org_role(
    storage: Storage, org: Organization, subject: str, role: MembershipRole
) -> Organization:
    """Place ``subject`` in exactly one of the org's admin/viewer sets."""
    admins = [a for a in org.admins if a != subject]
    viewers = [v for v in org.viewers if v != subject]
    if role == MembershipRole.ADMIN:
        admins.append(subject)
    else:
        viewers.append(subject)

    if not admins:
        raise MembershipConflict(
            "Organization must keep at least one administrator", tenant_key=org.tenant_key
        )
    if admins == org.admins and viewers == org.viewers:
        return org
    return await storage.update(
        Organization, org.tenant_key, {"admins": admins, "viewers": viewers}
    ) or org


async def _drop_from_org(storage: Storage, org: Organization, subject: str) -> None:
    admins = [a for a in org.admins if a != subject]
    viewers = [v for v in org.viewers if v != subject]
    if admins != org.admins or viewers != org.viewers:
        await storage.update(Organization, org.tenant_key, {"admins": admins, "viewers": viewers})


async def _is_last_admin(storage: Storage, org: Organization, membership: UserMembership) -> bool:
    if membership.role != MembershipRole.ADMIN or membership.status != MembershipStatus.ACTIVE:
        return False
    other_members = [
        m
        for m in await storage.find(
            UserMembership,
            tenant_key=org.tenant_key,
            role=MembershipRole.ADMIN.value,
            status=MembershipStatus.ACTIVE.value,
        )
        if m.email != membership.email
    ]
    other_subjects = [a for a in org.admins if a != _member_id(membership)]
    return not other_members and not other_subjects


def _member_id(membership: UserMembership) -> str:
    """Identity stored in the org admin/viewer sets: the subject, else the email."""
    return membership.user_id or membership.email


async def _guest_member_id(storage: Storage, org: Organization, email: str) -> str:
    """Org-set id of a member approved into ``org`` from another tenant."""
    approved = await storage.get(JoinRequest, join_id_for(email, org.tenant_key))
    if approved is not None and approved.status == JoinStatus.APPROVED:
        home = await storage.get(UserMembership, email)
        for candidate in (approved.user_id, home.user_id if home else None, email):
            if candidate and (candidate in org.admins or candidate in org.viewers):
                return candidate
    raise UserNotFound("User not found in organization", email=email, tenant_key=org.tenant_key)


# ---------------------------------------------------------------------------
# Registration and join requests
# ---------------------------------------------------------------------------

async def _submit_join(
    storage: Storage,
    *,
    tenant_key: str,
    email: str,
    name: str,
    message: str = "",
    user_id: Optional[str] = None,
    partner_code: Optional[str] = None,
) -> JoinRequest:
    """Pending viewer membership (when the email has none) plus a pending join request."""
    if await storage.get(UserMembership, email) is None:
        try:
            await storage.insert(
                UserMembership(
                    email=email,
                    name=name,
                    tenant_key=tenant_key,
                    role=MembershipRole.VIEWER.value,
                    status=MembershipStatus.PENDING_APPROVAL.value,
                    partner_code=partner_code,
                    user_id=user_id,
                )
            )
        except DuplicateRecord:
            log.info("membership.already_exists", email=email, tenant_key=tenant_key)

    join_request = await storage.insert(
        JoinRequest(
            join_id=join_id_for(email, tenant_key),
            email=email,
            name=name,
            tenant_key=tenant_key,
            message=message or "",
            status=JoinStatus.PENDING.value,
            user_id=user_id,
        ),
        overwrite=True,
    )
    log.info("membership.join_requested", email=email, tenant_key=tenant_key)
    return join_request


async def register_or_join(
    storage: Storage,
    settings: Settings,
    *,
    email: str,
    name: str,
    creator: CallerIdentity,
    partner_code: Optional[str] = None,
    legal_entity: bool = False,
) -> dict:
    """Register ``email`` against its domain's organization, creating it if needed.

    Returns ``{message, client_name, joined}``. A second call for the same
    email is a no-op.
    """
    if legal_entity and not (
        creator.role == settings.legal_entity_role or is_platform_admin(creator, settings)
    ):
        raise Forbidden(
            "Legal-entity registration requires the legal-entity role",
            required_role=settings.legal_entity_role,
        )

    tenant_key = resolve_tenant(email, settings.generic_email_domains)

    existing = await storage.get(UserMembership, email)
    if existing is not None:
        return {"message": ALREADY_REGISTERED, "client_name": existing.tenant_key, "joined": True}

    # Record the creator's subject only when they are registering themselves.
    user_id = creator.subject_id if creator.email.lower() == email.lower() else None

    if await storage.get(Organization, tenant_key) is None:
        try:
            await provision_organization(
                storage,
                tenant_key=tenant_key,
                organization_name=email_domain(email),
                admin_id=user_id or email,
                owner_email=email,
                tier=TierCode.LE if legal_entity else TierCode.L0,
                org_type=OrgType.LEGAL_ENTITY if legal_entity else OrgType.STANDARD,
                le_master=(user_id or email) if legal_entity else None,
                partner_code=partner_code,
            )
        except DuplicateOrganization:
            log.info("org.provision_race", tenant_key=tenant_key, email=email)
        else:
            await storage.insert(
                UserMembership(
                    email=email,
                    name=name,
                    tenant_key=tenant_key,
                    role=MembershipRole.ADMIN.value,
                    status=MembershipStatus.ACTIVE.value,
                    partner_code=partner_code,
                    user_id=user_id,
                )
            )
            log.info("membership.registered_admin", email=email, tenant_key=tenant_key)
            return {"message": ORG_CREATED, "client_name": tenant_key, "joined": True}

    await _submit_join(
        storage,
        tenant_key=tenant_key,
        email=email,
        name=name,
        user_id=user_id,
        partner_code=partner_code,
    )
    return {"message": JOIN_SUBMITTED, "client_name": tenant_key, "joined": False}


async def join_request(
    storage: Storage,
    settings: Settings,
    *,
    org_domain: str,
    email: str,
    name: str,
    message: Optional[str] = None,
    user_id: Optional[str] = None,
) -> JoinRequest:
    """Ask to join the organization behind ``org_domain``."""
    if is_generic_domain(org_domain, settings.generic_email_domains):
        raise InvalidEmailDomain("Cannot join a generic email provider", domain=org_domain)
    tenant_key = tenant_key_from_domain(org_domain)
    await get_org(storage, tenant_key)

    membership = await storage.get(UserMembership, email)
    if (
        membership is not None
        and membership.tenant_key == tenant_key
        and membership.status == MembershipStatus.ACTIVE
    ):
        raise MembershipConflict(
            "User is already an active member of this organization",
            email=email,
            tenant_key=tenant_key,
        )

    return await _submit_join(
        storage,
        tenant_key=tenant_key,
        email=email,
        name=name,
        message=message or "",
        user_id=user_id,
    )


async def approve_join_request(
    storage: Storage,
    settings: Settings,
    join_id: str,
    approver: CallerIdentity,
    assigned_role: MembershipRole = MembershipRole.VIEWER,
) -> JoinRequest:
    """Activate the requester with ``assigned_role``.

    Every write is an unconditional set, so approving twice is harmless.
    """
    assigned_role = MembershipRole(assigned_role)
    pending = await storage.get(JoinRequest, join_id)
    if pending is None:
        raise JoinRequestNotFound("Join request not found", join_id=join_id)
    org = await get_org(storage, pending.tenant_key)
    require(approver, org, Capability.ADMINISTER_ORG, settings)
    if pending.status == JoinStatus.REJECTED:
        raise MembershipConflict("Join request was already rejected", join_id=join_id)

    membership = await storage.get(UserMembership, pending.email)
    if membership is None:
        membership = await storage.insert(
            UserMembership(
                email=pending.email,
                name=pending.name,
                tenant_key=pending.tenant_key,
                role=assigned_role.value,
                status=MembershipStatus.ACTIVE.value,
                user_id=pending.user_id,
            ),
            overwrite=True,
        )
    elif membership.tenant_key == pending.tenant_key:
        fields = {"status": MembershipStatus.ACTIVE.value, "role": assigned_role.value}
        if pending.user_id and not membership.user_id:
            fields["user_id"] = pending.user_id
        membership = await storage.update(UserMembership, pending.email, fields) or membership
    else:
        log.info(
            "membership.home_tenant_kept",
            email=pending.email,
            home_tenant=membership.tenant_key,
            tenant_key=pending.tenant_key,
        )

    subject = pending.user_id or _member_id(membership)
    await _assign_org_role(storage, org, subject, assigned_role)

    approved = await storage.update(
        JoinRequest,
        join_id,
        {
            "status": JoinStatus.APPROVED.value,
            "decided_by": approver.email,
            "decided_at": _utcnow(),
        },
    )
    log.info(
        "membership.join_approved",
        join_id=join_id,
        tenant_key=pending.tenant_key,
        role=assigned_role.value,
        approver=approver.email,
    )
    return approved or pending


async def reject_join_request(
    storage: Storage, settings: Settings, join_id: str, approver: CallerIdentity
) -> JoinRequest:
    """Close a pending join request and drop the pending membership it created."""
    pending = await storage.get(JoinRequest, join_id)
    if pending is None:
        raise JoinRequestNotFound("Join request not found", join_id=join_id)
    org = await get_org(storage, pending.tenant_key)
    require(approver, org, Capability.ADMINISTER_ORG, settings)
    if pending.status == JoinStatus.APPROVED:
        raise MembershipConflict("Join request was already approved", join_id=join_id)

    rejected = await storage.update(
        JoinRequest,
        join_id,
        {
            "status": JoinStatus.REJECTED.value,
            "decided_by": approver.email,
            "decided_at": _utcnow(),
        },
    )
    membership = await storage.get(UserMembership, pending.email)
    if (
        membership is not None
        and membership.tenant_key == pending.tenant_key
        and membership.status == MembershipStatus.PENDING_APPROVAL
    ):
        await storage.delete(UserMembership, pending.email)

    log.info("membership.join_rejected", join_id=join_id, approver=approver.email)
    return rejected or pending


async def get_pending_join_requests(
    storage: Storage, settings: Settings, tenant_key: str, caller: CallerIdentity
) -> list[JoinRequest]:
    org = await get_org(storage, tenant_key)
    require(caller, org, Capability.ADMINISTER_ORG, settings)
    requests = await storage.find(
        JoinRequest, tenant_key=tenant_key, status=JoinStatus.PENDING.value
    )
    return sorted(requests, key=lambda r: r.created_at)


# ---------------------------------------------------------------------------
# Admin-managed memberships
# ---------------------------------------------------------------------------

async def invite_user(
    storage: Storage,
    settings: Settings,
    *,
    email: str,
    name: str,
    tenant_key: str,
    inviter: CallerIdentity,
) -> UserMembership:
    """Pre-create a pending viewer membership; invites carry no join request."""
    org = await get_org(storage, tenant_key)
    require(inviter, org, Capability.ADMINISTER_ORG, settings)

    if await storage.get(UserMembership, email) is not None:
        raise MembershipConflict("User already has a membership", email=email)
    try:
        membership = await storage.insert(
            UserMembership(
                email=email,
                name=name,
                tenant_key=tenant_key,
                role=MembershipRole.VIEWER.value,
                status=MembershipStatus.PENDING_APPROVAL.value,
                invited_by=inviter.email,
            )
        )
    except DuplicateRecord as exc:
        raise MembershipConflict("User already has a membership", email=email) from exc

    log.info("membership.invited", email=email, tenant_key=tenant_key, inviter=inviter.email)
    return membership


async def update_user_role(
    storage: Storage,
    settings: Settings,
    *,
    email: str,
    tenant_key: str,
    role: MembershipRole,
    caller: CallerIdentity,
) -> Optional[UserMembership]:
    """Change a member's role in ``tenant_key``.

    Members approved from another tenant only move between the org's
    admin/viewer sets; their home membership is returned unchanged.
    """
    role = MembershipRole(role)
    org = await get_org(storage, tenant_key)
    require(caller, org, Capability.ADMINISTER_ORG, settings)
    membership = await storage.get(UserMembership, email)
    if membership is None or membership.tenant_key != tenant_key:
        subject = await _guest_member_id(storage, org, email)
        if role == MembershipRole.VIEWER and org.admins == [subject]:
            raise MembershipConflict(
                "Cannot demote the last administrator", email=email, tenant_key=tenant_key
            )
        await _assign_org_role(storage, org, subject, role)
        log.info(
            "membership.guest_role_updated", email=email, tenant_key=tenant_key, role=role.value
        )
        return membership

    if membership.status != MembershipStatus.ACTIVE:
        raise MembershipConflict(
            "Role can only change on an active membership", email=email, status=membership.status
        )
    if role == MembershipRole.VIEWER and await _is_last_admin(storage, org, membership):
        raise MembershipConflict(
            "Cannot demote the last administrator", email=email, tenant_key=tenant_key
        )

    await _assign_org_role(storage, org, _member_id(membership), role)
    updated = await storage.update(UserMembership, email, {"role": role.value})
    log.info("membership.role_updated", email=email, tenant_key=tenant_key, role=role.value)
    return updated or membership


async def remove_user(
    storage: Storage,
    settings: Settings,
    *,
    email: str,
    tenant_key: str,
    caller: CallerIdentity,
) -> None:
    org = await get_org(storage, tenant_key)
    require(caller, org, Capability.ADMINISTER_ORG, settings)
    membership = await storage.get(UserMembership, email)
    if membership is None or membership.tenant_key != tenant_key:
        subject = await _guest_member_id(storage, org, email)
        if org.admins == [subject]:
            raise MembershipConflict(
                "Cannot remove the last administrator", email=email, tenant_key=tenant_key
            )
        # The home membership belongs to the other tenant.
        await _drop_from_org(storage, org, subject)
        await storage.delete(JoinRequest, join_id_for(email, tenant_key))
        log.info(
            "membership.guest_removed", email=email, tenant_key=tenant_key, caller=caller.email
        )
        return

    if await _is_last_admin(storage, org, membership):
        raise MembershipConflict(
            "Cannot remove the last administrator", email=email, tenant_key=tenant_key
        )

    await _drop_from_org(storage, org, _member_id(membership))
    await storage.delete(JoinRequest, join_id_for(email, tenant_key))
    await storage.delete(UserMembership, email)
    log.info("membership.removed", email=email, tenant_key=tenant_key, caller=caller.email)


async def get_user(storage: Storage, email: str) -> UserMembership:
    membership = await storage.get(UserMembership, email)
    if membership is None:
        raise UserNotFound("User not found", email=email)
    return membership


async def list_admin_orgs(storage: Storage, caller: CallerIdentity) -> list[Organization]:
    """Organizations the caller administers directly or as legal-entity master."""
    orgs: dict[str, Organization] = {}
    for member_id in sorted(member_ids(caller)):
        for org in await storage.find(Organization, admins=Contains(member_id)):
            orgs.setdefault(org.tenant_key, org)
        for org in await storage.find(Organization, le_master=member_id):
            orgs.setdefault(org.tenant_key, org)
    return list(orgs.values())
