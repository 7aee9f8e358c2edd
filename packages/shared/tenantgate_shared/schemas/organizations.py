"""
Organization-related Pydantic schemas shared between the server and its clients.

Covers: org creation (standard and legal-entity managed), profile updates,
org responses and the org switch result.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import OrgType

DOMAIN_PATTERN = r"^[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?(\.[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?)+$"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgProfile(BaseModel):
    """Optional profiling attributes shared by create and update requests."""

    sector: Optional[str] = None
    website_url: Optional[str] = None
    countries_of_operation: Optional[list[str]] = None
    home_url: Optional[str] = None
    about_us_url: Optional[str] = None
    additional_details: Optional[str] = None


class OrgCreateRequest(OrgProfile):
    org_name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    org_domain: str = Field(
        ...,
        max_length=253,
        pattern=DOMAIN_PATTERN,
        description="Business domain the tenant key is derived from",
    )
    partner_code: Optional[str] = None


class LeOrgCreateRequest(OrgCreateRequest):
    """Managed organization provisioned by a legal-entity administrator."""


class OrgUpdateRequest(OrgProfile):
    profile_data: Optional[dict] = Field(
        None,
        description="Free-form profiling data (replaces the stored value)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    tenant_key: str
    organization_name: str
    org_type: OrgType
    owner_email: Optional[str] = None
    created_by: Optional[str] = None
    admins: list[str]
    viewers: list[str]
    le_master: Optional[str] = None
    partner_code: Optional[str] = None
    sector: Optional[str] = None
    website_url: Optional[str] = None
    countries_of_operation: list[str] = []
    home_url: Optional[str] = None
    about_us_url: Optional[str] = None
    additional_details: Optional[str] = None
    profile_data: dict = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgResponse]


class OrgCreatedResponse(BaseModel):
    client_name: str


class OrgUpdatedResponse(BaseModel):
    updated: bool = True


class OrgDeletedResponse(BaseModel):
    deleted: bool = True
    client_name: str


class SwitchOrgResponse(BaseModel):
    switched_to: str
