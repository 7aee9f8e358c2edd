"""Subscription, tier and role catalogue models.

A ``NULL`` limit column means the limit is unlimited.
"""

from datetime import datetime
from typing import List, Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import _utcnow, created_at_field, json_list_field, tables


class Subscription(SQLModel, table=True):
    __tablename__ = tables.subscriptions

    tenant_key: str = Field(primary_key=True)
    subscription_level: str = Field(nullable=False)
    run_number: int = Field(default=0, nullable=False)
    run_quota: Optional[int] = None
    edit_count: int = Field(default=0, nullable=False)
    max_edits: Optional[int] = None
    apps_count: int = Field(default=0, nullable=False)
    max_apps: Optional[int] = None
    features_access: List[str] = json_list_field()
    payment_status: str = Field(default="unpaid", nullable=False)  # paid | unpaid
    progress: int = Field(default=0, nullable=False)
    price_monthly: float = Field(default=0, nullable=False)
    price_onetime_registration: float = Field(default=0, nullable=False)
    invoice_key: Optional[str] = None
    created_at: datetime = created_at_field()
    updated_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


class TierDefinition(SQLModel, table=True):
    __tablename__ = tables.tiers

    sub_level: str = Field(primary_key=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    max_edits: Optional[int] = None
    max_apps: Optional[int] = None
    run_quota: Optional[int] = None
    allowed_tabs: List[str] = json_list_field()
    price_monthly: float = Field(default=0, nullable=False)
    price_onetime_registration: float = Field(default=0, nullable=False)


class RoleDefinition(SQLModel, table=True):
    __tablename__ = tables.roles

    role_id: str = Field(primary_key=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    permissions: List[str] = json_list_field()
