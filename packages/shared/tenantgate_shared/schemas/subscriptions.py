"""
Subscription, tier and role-catalogue schemas.

Tier limits use ``None`` for "unlimited" so they survive JSON and SQL
round-trips (the legal-entity tier has no usage limits).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import PaymentStatus, UsageAction


# ---------------------------------------------------------------------------
# Tier reference data
# ---------------------------------------------------------------------------

class TierConfig(BaseModel):
    sub_level: str = Field(..., min_length=1, max_length=20, description="Tier code, e.g. L0..L3, LE")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    max_edits: Optional[int] = Field(default=0, ge=0, description="null = unlimited")
    max_apps: Optional[int] = Field(default=0, ge=0, description="null = unlimited")
    run_quota: Optional[int] = Field(default=0, ge=0, description="null = unlimited")
    allowed_tabs: list[str] = Field(default_factory=list)
    price_monthly: float = Field(default=0, ge=0)
    price_onetime_registration: float = Field(default=0, ge=0)

    model_config = {"from_attributes": True}


class TierListResponse(BaseModel):
    data: list[TierConfig]


class TierSavedResponse(BaseModel):
    saved: bool = True
    sub_level: str


class TierDeletedResponse(BaseModel):
    deleted: bool = True
    sub_level: str


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class SubscriptionCreateRequest(BaseModel):
    client_name: str = Field(..., min_length=1)
    tier: str = Field(..., min_length=1)


class SubscriptionUpdateRequest(BaseModel):
    """Partial update. A tier change re-snapshots every limit from the tier."""
    tier: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    invoice_key: Optional[str] = None
    max_edits: Optional[int] = Field(default=None, ge=0)
    max_apps: Optional[int] = Field(default=None, ge=0)
    run_quota: Optional[int] = Field(default=None, ge=0)


class SubscriptionResponse(BaseModel):
    client_name: str = Field(validation_alias="tenant_key")
    subscription_level: str
    run_number: int
    run_quota: Optional[int] = None
    edit_count: int
    max_edits: Optional[int] = None
    apps_count: int
    max_apps: Optional[int] = None
    features_access: list[str]
    payment_status: PaymentStatus
    progress: int
    price_monthly: float
    price_onetime_registration: float
    invoice_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class UsageResponse(BaseModel):
    client_name: str
    action: UsageAction
    used: int
    limit: Optional[int] = None


# ---------------------------------------------------------------------------
# Role catalogue
# ---------------------------------------------------------------------------

class RoleConfig(BaseModel):
    role_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class RoleListResponse(BaseModel):
    data: list[RoleConfig]


class RoleSavedResponse(BaseModel):
    saved: bool = True
    role_id: str


class RoleDeletedResponse(BaseModel):
    deleted: bool = True
    role_id: str
