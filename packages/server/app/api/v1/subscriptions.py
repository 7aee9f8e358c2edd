"""
Subscription API endpoints.

POST   /api/v1/subscriptions                                   - Create (org admin or LE admin)
GET    /api/v1/subscriptions/{clientName}                      - Get (org viewer)
PATCH  /api/v1/subscriptions/{clientName}                      - Change tier/limits (platform admin)
GET    /api/v1/subscriptions/{clientName}/usage/{action}       - Check a limit without consuming it
POST   /api/v1/subscriptions/{clientName}/usage/{action}       - Consume one unit of quota
GET    /api/v1/subscriptions/{clientName}/features/{feature}   - Feature access check
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.auth import get_identity, require_platform_admin, require_roles
from app.core.config import Settings, get_app_settings
from app.core.identity import Caller, CallerIdentity
from app.core.storage import Storage, get_storage
from app.services import subscriptions as subscription_service
from app.services.authorization import require
from app.services.organizations import get_org
from tenantgate_shared.schemas.common import Capability, NamedRole, UsageAction
from tenantgate_shared.schemas.subscriptions import (
    SubscriptionCreateRequest,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    UsageResponse,
)

router = APIRouter()


async def _require_org_capability(
    storage: Storage,
    settings: Settings,
    identity: CallerIdentity,
    tenant_key: str,
    capability: Capability,
) -> None:
    org = await get_org(storage, tenant_key)
    require(identity, org, capability, settings)


@router.post("", response_model=SubscriptionResponse, status_code=201, tags=["Subscriptions"])
async def create_subscription(
    body: SubscriptionCreateRequest,
    caller: Caller = Depends(require_roles(NamedRole.ADMIN, NamedRole.LE_ADMIN)),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await _require_org_capability(
        storage, settings, caller.identity, body.client_name, Capability.ADMINISTER_ORG
    )
    subscription = await subscription_service.create_subscription(
        storage, body.client_name, body.tier
    )
    return SubscriptionResponse.model_validate(subscription)


@router.get("/{client_name}", response_model=SubscriptionResponse, tags=["Subscriptions"])
async def get_subscription(
    client_name: str,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await _require_org_capability(storage, settings, identity, client_name, Capability.VIEW_ORG)
    subscription = await subscription_service.get_subscription(storage, client_name)
    return SubscriptionResponse.model_validate(subscription)


@router.patch("/{client_name}", response_model=SubscriptionResponse, tags=["Subscriptions"])
async def update_subscription(
    client_name: str,
    body: SubscriptionUpdateRequest,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    """Change tier (re-snapshots limits), payment status, progress or explicit limits."""
    subscription = await subscription_service.update_subscription(
        storage, client_name, body.model_dump(mode="json", exclude_unset=True)
    )
    return SubscriptionResponse.model_validate(subscription)


@router.get("/{client_name}/usage/{action}", response_model=UsageResponse, tags=["Subscriptions"])
async def check_usage(
    client_name: str,
    action: UsageAction,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """403 ``quota_exceeded`` when the action's limit has been reached."""
    await _require_org_capability(storage, settings, identity, client_name, Capability.VIEW_ORG)
    await subscription_service.enforce_limit(storage, client_name, action)
    subscription = await subscription_service.get_subscription(storage, client_name)
    counter, limit = subscription_service.USAGE_COUNTERS[action]
    return UsageResponse(
        client_name=client_name,
        action=action,
        used=getattr(subscription, counter),
        limit=getattr(subscription, limit),
    )


@router.post("/{client_name}/usage/{action}", response_model=UsageResponse, tags=["Subscriptions"])
async def consume_usage(
    client_name: str,
    action: UsageAction,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await _require_org_capability(storage, settings, identity, client_name, Capability.VIEW_ORG)
    used = await subscription_service.consume_quota(storage, client_name, action)
    subscription = await subscription_service.get_subscription(storage, client_name)
    _, limit = subscription_service.USAGE_COUNTERS[action]
    return UsageResponse(
        client_name=client_name, action=action, used=used, limit=getattr(subscription, limit)
    )


@router.get("/{client_name}/features/{feature}", tags=["Subscriptions"])
async def check_feature(
    client_name: str,
    feature: str,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await _require_org_capability(storage, settings, identity, client_name, Capability.VIEW_ORG)
    allowed = await subscription_service.check_feature_allowed(storage, client_name, feature)
    return {"client_name": client_name, "feature": feature, "allowed": allowed}
