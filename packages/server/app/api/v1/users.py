"""
User and membership API endpoints.

POST   /api/v1/users/register                 - Register or join by email domain
POST   /api/v1/users/register/legal-entity    - Register a legal-entity organization
POST   /api/v1/users/join-request             - Ask to join an org by domain
POST   /api/v1/users/approve-join/{joinId}    - Approve a join request (org admin)
POST   /api/v1/users/reject-join/{joinId}     - Reject a join request (org admin)
POST   /api/v1/users/invite                   - Pre-create a pending membership (org admin)
GET    /api/v1/users/admin-orgs               - Orgs the caller administers
PATCH  /api/v1/users/role/{email}?org=        - Change a member's role (org admin)
DELETE /api/v1/users/remove/{email}?org=      - Remove a member (org admin)
GET    /api/v1/users/join-requests?org=       - Pending join requests (org admin)
GET    /api/v1/users/me                       - The caller's membership
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.core.auth import get_identity
from app.core.config import Settings, get_app_settings
from app.core.identity import CallerIdentity
from app.core.storage import Storage, get_storage
from app.services import memberships as membership_service
from tenantgate_shared.schemas.organizations import OrgListResponse, OrgResponse
from tenantgate_shared.schemas.users import (
    ApproveJoinRequest,
    ApproveJoinResponse,
    InviteUserRequest,
    InviteUserResponse,
    JoinOrgRequest,
    JoinRequestResponse,
    MembershipResponse,
    PendingJoinListResponse,
    PendingJoinResponse,
    RegisterRequest,
    RegisterResponse,
    RejectJoinResponse,
    RemoveUserResponse,
    RoleUpdateRequest,
    RoleUpdateResponse,
)

router = APIRouter()


async def _register(
    body: RegisterRequest,
    identity: CallerIdentity,
    storage: Storage,
    settings: Settings,
    *,
    legal_entity: bool,
) -> RegisterResponse:
    result = await membership_service.register_or_join(
        storage,
        settings,
        email=str(body.email) if body.email else identity.email,
        name=body.name,
        creator=identity,
        partner_code=body.partner_code,
        legal_entity=legal_entity,
    )
    return RegisterResponse(**result)


@router.post("/register", response_model=RegisterResponse, tags=["Users"])
async def register(
    body: RegisterRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """Register against the email domain's org; creates the org when it is new."""
    return await _register(body, identity, storage, settings, legal_entity=False)


@router.post("/register/legal-entity", response_model=RegisterResponse, tags=["Users"])
async def register_legal_entity(
    body: RegisterRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    return await _register(body, identity, storage, settings, legal_entity=True)


@router.post("/join-request", response_model=JoinRequestResponse, tags=["Users"])
async def join_request(
    body: JoinOrgRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    pending = await membership_service.join_request(
        storage,
        settings,
        org_domain=body.org_domain,
        email=identity.email,
        name=identity.name or identity.email,
        message=body.message,
        user_id=identity.subject_id,
    )
    return JoinRequestResponse(
        message=membership_service.JOIN_SENT,
        client_name=pending.tenant_key,
        join_id=pending.join_id,
    )


@router.post("/approve-join/{join_id}", response_model=ApproveJoinResponse, tags=["Users"])
async def approve_join(
    join_id: str,
    body: ApproveJoinRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await membership_service.approve_join_request(
        storage, settings, join_id, identity, assigned_role=body.role
    )
    return ApproveJoinResponse(assigned_role=body.role)


@router.post("/reject-join/{join_id}", response_model=RejectJoinResponse, tags=["Users"])
async def reject_join(
    join_id: str,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await membership_service.reject_join_request(storage, settings, join_id, identity)
    return RejectJoinResponse()


@router.post("/invite", response_model=InviteUserResponse, status_code=201, tags=["Users"])
async def invite_user(
    body: InviteUserRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await membership_service.invite_user(
        storage,
        settings,
        email=str(body.email),
        name=body.name,
        tenant_key=body.org_name.strip(),
        inviter=identity,
    )
    return InviteUserResponse()


@router.get("/admin-orgs", response_model=OrgListResponse, tags=["Users"])
async def admin_orgs(
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    orgs = await membership_service.list_admin_orgs(storage, identity)
    return OrgListResponse(data=[OrgResponse.model_validate(o) for o in orgs])


@router.patch("/role/{email}", response_model=RoleUpdateResponse, tags=["Users"])
async def update_role(
    email: str,
    body: RoleUpdateRequest,
    org: str = Query(..., description="Tenant key"),
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await membership_service.update_user_role(
        storage, settings, email=email, tenant_key=org, role=body.role, caller=identity
    )
    return RoleUpdateResponse(role=body.role)


@router.delete("/remove/{email}", response_model=RemoveUserResponse, tags=["Users"])
async def remove_user(
    email: str,
    org: str = Query(..., description="Tenant key"),
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await membership_service.remove_user(
        storage, settings, email=email, tenant_key=org, caller=identity
    )
    return RemoveUserResponse()


@router.get("/join-requests", response_model=PendingJoinListResponse, tags=["Users"])
async def pending_join_requests(
    org: str = Query(..., description="Tenant key"),
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    items = await membership_service.get_pending_join_requests(storage, settings, org, identity)
    return PendingJoinListResponse(data=[PendingJoinResponse.model_validate(i) for i in items])


@router.api_route("/me", methods=["GET", "POST"], response_model=MembershipResponse, tags=["Users"])
async def me(
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    membership = await membership_service.get_user(storage, identity.email)
    return MembershipResponse.model_validate(membership)
