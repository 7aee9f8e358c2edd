"""Membership and join-workflow schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from .common import JoinStatus, MembershipRole, MembershipStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    """Register with a business email, creating or joining its organization."""
    email: Optional[EmailStr] = None  # defaults to the token's email
    name: str = Field(min_length=1, max_length=200)
    partner_code: Optional[str] = None


class JoinOrgRequest(BaseModel):
    org_domain: str = Field(min_length=3, max_length=253)
    message: Optional[str] = Field(default=None, max_length=2000)


class ApproveJoinRequest(BaseModel):
    role: MembershipRole = MembershipRole.VIEWER


class InviteUserRequest(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=200)
    org_name: str = Field(min_length=1, description="Tenant key of the inviting organization")


class RoleUpdateRequest(BaseModel):
    role: MembershipRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class RegisterResponse(BaseModel):
    message: str
    client_name: str
    joined: bool


class JoinRequestResponse(BaseModel):
    message: str
    client_name: str
    join_id: str


class ApproveJoinResponse(BaseModel):
    approved: bool = True
    assigned_role: MembershipRole


class RejectJoinResponse(BaseModel):
    rejected: bool = True


class InviteUserResponse(BaseModel):
    invited: bool = True


class RoleUpdateResponse(BaseModel):
    updated: bool = True
    role: MembershipRole


class RemoveUserResponse(BaseModel):
    removed: bool = True


class MembershipResponse(BaseModel):
    email: str
    name: str
    client_name: str = Field(validation_alias="tenant_key")
    role: MembershipRole
    status: MembershipStatus
    partner_code: Optional[str] = None
    user_id: Optional[str] = None
    invited_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class PendingJoinResponse(BaseModel):
    join_id: str
    email: str
    name: str
    client_name: str = Field(validation_alias="tenant_key")
    message: str = ""
    status: JoinStatus
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class PendingJoinListResponse(BaseModel):
    data: List[PendingJoinResponse]
