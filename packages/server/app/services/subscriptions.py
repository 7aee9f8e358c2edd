"""
Subscription service: tier snapshots, usage counters and quota enforcement.

Limits are copied from the tier when the subscription is created (or its tier
changes), so later catalogue edits never reach provisioned tenants.
"""

from __future__ import annotations

from typing import Any

import structlog

from app.core.errors import (
    DuplicateSubscription,
    OrganizationNotFound,
    QuotaExceeded,
    SubscriptionNotFound,
)
from app.core.storage import DuplicateRecord, Storage
from app.models.base import _utcnow
from app.models.organization import Organization
from app.models.subscription import Subscription, TierDefinition
from app.services.tiers import get_tier_limits
from tenantgate_shared.schemas.common import UsageAction

log = structlog.get_logger()

# action -> (counter column, limit column)
USAGE_COUNTERS: dict[UsageAction, tuple[str, str]] = {
    UsageAction.ADD_APP: ("apps_count", "max_apps"),
    UsageAction.EDIT: ("edit_count", "max_edits"),
    UsageAction.RUN: ("run_number", "run_quota"),
}

QUOTA_MESSAGES = {
    UsageAction.ADD_APP: "App limit reached for this subscription tier",
    UsageAction.EDIT: "Edit limit reached for this subscription tier",
    UsageAction.RUN: "Profiling run quota exceeded",
}


def _tier_snapshot(tier: TierDefinition) -> dict[str, Any]:
    return {
        "subscription_level": tier.sub_level,
        "max_edits": tier.max_edits,
        "max_apps": tier.max_apps,
        "run_quota": tier.run_quota,
        "features_access": list(tier.allowed_tabs),
        "price_monthly": tier.price_monthly,
        "price_onetime_registration": tier.price_onetime_registration,
    }


async def create_subscription(storage: Storage, tenant_key: str, tier_code: str) -> Subscription:
    """Create the tenant's subscription with the tier's limits snapshotted."""
    if await storage.get(Organization, tenant_key) is None:
        raise OrganizationNotFound("Organization not found", tenant_key=tenant_key)
    tier = await get_tier_limits(storage, tier_code)

    try:
        subscription = await storage.insert(
            Subscription(tenant_key=tenant_key, payment_status="unpaid", **_tier_snapshot(tier))
        )
    except DuplicateRecord as exc:
        raise DuplicateSubscription(
            "Subscription already exists", tenant_key=tenant_key
        ) from exc

    log.info("subscription.created", tenant_key=tenant_key, tier=tier_code)
    return subscription


async def get_subscription(storage: Storage, tenant_key: str) -> Subscription:
    subscription = await storage.get(Subscription, tenant_key)
    if subscription is None:
        raise SubscriptionNotFound("Subscription not found", tenant_key=tenant_key)
    return subscription


async def update_subscription(
    storage: Storage, tenant_key: str, changes: dict[str, Any]
) -> Subscription:
    """Merge ``changes`` into the subscription.

    A ``tier`` change re-snapshots every tier-derived limit first; explicit
    limit overrides in the same call are applied on top.
    """
    await get_subscription(storage, tenant_key)

    changes = dict(changes)
    fields: dict[str, Any] = {}
    tier_code = changes.pop("tier", None)
    if tier_code:
        fields.update(_tier_snapshot(await get_tier_limits(storage, tier_code)))
    fields.update(changes)
    fields["updated_at"] = _utcnow()

    subscription = await storage.update(Subscription, tenant_key, fields)
    if subscription is None:
        raise SubscriptionNotFound("Subscription not found", tenant_key=tenant_key)
    log.info("subscription.updated", tenant_key=tenant_key, fields=sorted(fields))
    return subscription


async def check_feature_allowed(storage: Storage, tenant_key: str, feature: str) -> bool:
    subscription = await get_subscription(storage, tenant_key)
    return feature in subscription.features_access


async def enforce_limit(storage: Storage, tenant_key: str, action: UsageAction) -> None:
    """Raise QuotaExceeded when ``action``'s counter has reached its limit.

    No side effects; pair with ``increment_usage`` or use ``consume_quota``.
    """
    action = UsageAction(action)
    subscription = await get_subscription(storage, tenant_key)
    counter_field, limit_field = USAGE_COUNTERS[action]
    used = getattr(subscription, counter_field)
    limit = getattr(subscription, limit_field)
    if limit is not None and used >= limit:
        log.info("quota.exceeded", tenant_key=tenant_key, action=action.value, used=used, limit=limit)
        raise QuotaExceeded(
            QUOTA_MESSAGES[action],
            tenant_key=tenant_key,
            action=action.value,
            limit_name=limit_field,
            used=used,
            limit=limit,
        )


async def increment_usage(storage: Storage, tenant_key: str, action: UsageAction, by: int = 1) -> int:
    counter_field, _ = USAGE_COUNTERS[UsageAction(action)]
    value = await storage.increment(Subscription, tenant_key, counter_field, by)
    if value is None:
        raise SubscriptionNotFound("Subscription not found", tenant_key=tenant_key)
    return value


async def increment_run_counter(storage: Storage, tenant_key: str) -> int:
    return await increment_usage(storage, tenant_key, UsageAction.RUN)


async def consume_quota(storage: Storage, tenant_key: str, action: UsageAction, by: int = 1) -> int:
    """Check and increment in one conditional update; returns the new counter."""
    action = UsageAction(action)
    counter_field, limit_field = USAGE_COUNTERS[action]
    value = await storage.increment(
        Subscription, tenant_key, counter_field, by, limit_field=limit_field
    )
    if value is not None:
        return value

    # Nothing matched: either no subscription or the limit held.
    subscription = await get_subscription(storage, tenant_key)
    limit = getattr(subscription, limit_field)
    log.info("quota.exceeded", tenant_key=tenant_key, action=action.value, limit=limit)
    raise QuotaExceeded(
        QUOTA_MESSAGES[action],
        tenant_key=tenant_key,
        action=action.value,
        limit_name=limit_field,
        used=getattr(subscription, counter_field),
        limit=limit,
    )
