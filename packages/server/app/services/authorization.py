"""
Authorization engine.

``authorize`` is a pure predicate over a caller identity and an organization;
``require`` is the raising form every mutating service operation calls.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from app.core.config import Settings
from app.core.errors import Forbidden
from app.core.identity import Caller, CallerIdentity
from app.models.organization import Organization
from tenantgate_shared.schemas.common import (
    Capability,
    MembershipRole,
    MembershipStatus,
    NamedRole,
    TierCode,
)

log = structlog.get_logger()


def is_platform_admin(identity: CallerIdentity, settings: Settings) -> bool:
    return identity.role is not None and identity.role == settings.platform_admin_role


def member_ids(identity: CallerIdentity) -> set[str]:
    """Ids an org may hold for this caller: the subject, or the email for
    members registered before their first login."""
    return {identity.subject_id, identity.email}


def authorize(
    identity: CallerIdentity,
    organization: Optional[Organization],
    capability: Capability,
    settings: Settings,
) -> bool:
    if capability == Capability.PLATFORM_ADMIN:
        return is_platform_admin(identity, settings)
    if organization is None:
        return False

    ids = member_ids(identity)
    is_master = organization.le_master is not None and organization.le_master in ids
    is_admin = not ids.isdisjoint(organization.admins)
    if capability == Capability.ADMINISTER_ORG:
        return is_admin or is_master
    if capability == Capability.VIEW_ORG:
        return is_admin or not ids.isdisjoint(organization.viewers) or is_master
    return False


def can_administer(identity: CallerIdentity, organization: Organization, settings: Settings) -> bool:
    return authorize(identity, organization, Capability.ADMINISTER_ORG, settings) or is_platform_admin(
        identity, settings
    )


def can_view(identity: CallerIdentity, organization: Organization, settings: Settings) -> bool:
    return authorize(identity, organization, Capability.VIEW_ORG, settings) or is_platform_admin(
        identity, settings
    )


def require(
    identity: CallerIdentity,
    organization: Optional[Organization],
    capability: Capability,
    settings: Settings,
) -> None:
    """Raise Forbidden unless ``identity`` holds ``capability``.

    Platform admins pass every organization-scoped check.
    """
    if authorize(identity, organization, capability, settings):
        return
    if capability != Capability.PLATFORM_ADMIN and is_platform_admin(identity, settings):
        return

    tenant_key = organization.tenant_key if organization is not None else None
    log.warning(
        "authz.denied",
        subject=identity.subject_id,
        capability=capability.value,
        tenant_key=tenant_key,
    )
    raise Forbidden(
        f"Missing capability '{capability.value}'",
        capability=capability.value,
        tenant_key=tenant_key,
    )


def has_named_role(caller: Caller, role: str) -> bool:
    """Endpoint-guard role predicates (``admin``, ``LE_ADMIN``, ``viewer``)."""
    membership = caller.membership
    active = membership is not None and membership.status == MembershipStatus.ACTIVE
    if role == NamedRole.ADMIN:
        return active and membership.role == MembershipRole.ADMIN
    if role == NamedRole.VIEWER:
        return active and membership.role == MembershipRole.VIEWER
    if role == NamedRole.LE_ADMIN:
        return caller.subscription_level == TierCode.LE
    return False


def require_named_roles(caller: Caller, roles: Iterable[str]) -> None:
    roles = list(roles)
    if any(has_named_role(caller, role) for role in roles):
        return
    log.warning("authz.role_denied", email=caller.email, required=roles)
    raise Forbidden("Insufficient role", required_roles=roles)
