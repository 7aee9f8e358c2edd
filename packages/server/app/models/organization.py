"""Organization model (one per tenant key)."""

from datetime import datetime
from typing import List, Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import created_at_field, json_list_field, tables


class Organization(SQLModel, table=True):
    __tablename__ = tables.organizations

    tenant_key: str = Field(primary_key=True)
    organization_name: str = Field(nullable=False)
    org_type: str = Field(default="standard", nullable=False)  # standard | legal_entity | le_org
    owner_email: Optional[str] = None
    created_by: Optional[str] = None
    admins: List[str] = json_list_field()
    viewers: List[str] = json_list_field()
    le_master: Optional[str] = Field(default=None, index=True)
    partner_code: Optional[str] = None
    sector: Optional[str] = None
    website_url: Optional[str] = None
    countries_of_operation: List[str] = json_list_field()
    home_url: Optional[str] = None
    about_us_url: Optional[str] = None
    additional_details: Optional[str] = None
    profile_data: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = created_at_field()
