"""
Organization API endpoints.

GET    /api/v1/orgs/all                 - All orgs (platform admin)
POST   /api/v1/orgs                     - Create an org for a domain (org admin)
POST   /api/v1/orgs/le                  - Create a legal-entity managed org (LE admin)
GET    /api/v1/orgs                     - Orgs visible to the caller
GET    /api/v1/orgs/switch/{clientName} - Switch active org
GET    /api/v1/orgs/{clientName}        - Org details (viewer)
PATCH  /api/v1/orgs/{clientName}        - Update org profile (org admin)
DELETE /api/v1/orgs/{clientName}        - Delete org and its tenant data (platform admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.auth import get_caller, get_identity, require_platform_admin
from app.core.config import Settings, get_app_settings
from app.core.identity import Caller, CallerIdentity
from app.core.storage import Storage, get_storage
from app.services import organizations as org_service
from app.services.authorization import require
from tenantgate_shared.schemas.common import Capability
from tenantgate_shared.schemas.organizations import (
    LeOrgCreateRequest,
    OrgCreateRequest,
    OrgCreatedResponse,
    OrgDeletedResponse,
    OrgListResponse,
    OrgResponse,
    OrgUpdatedResponse,
    OrgUpdateRequest,
    SwitchOrgResponse,
)

router = APIRouter()


def _org_list(orgs) -> OrgListResponse:
    return OrgListResponse(data=[OrgResponse.model_validate(o) for o in orgs])


@router.get("/all", response_model=OrgListResponse, tags=["Organizations"])
async def list_all_orgs(
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    return _org_list(await org_service.list_all_orgs(storage))


@router.post("", response_model=OrgCreatedResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    caller: Caller = Depends(get_caller),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """Create an organization for ``org_domain``. The creator becomes an administrator."""
    org = await org_service.create_org(storage, settings, body, caller)
    return OrgCreatedResponse(client_name=org.tenant_key)


@router.post("/le", response_model=OrgCreatedResponse, status_code=201, tags=["Organizations"])
async def create_le_org(
    body: LeOrgCreateRequest,
    caller: Caller = Depends(get_caller),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    org = await org_service.create_le_org(storage, settings, body, caller)
    return OrgCreatedResponse(client_name=org.tenant_key)


@router.get("", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    caller: Caller = Depends(get_caller),
    storage: Storage = Depends(get_storage),
):
    """List orgs the authenticated user belongs to."""
    return _org_list(await org_service.list_user_orgs(storage, caller))


@router.get("/switch/{client_name}", response_model=SwitchOrgResponse, tags=["Organizations"])
async def switch_org(
    client_name: str,
    caller: Caller = Depends(get_caller),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    switched = await org_service.switch_org(storage, settings, client_name, caller)
    return SwitchOrgResponse(switched_to=switched)


@router.get("/{client_name}", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    client_name: str,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    org = await org_service.get_org(storage, client_name)
    require(identity, org, Capability.VIEW_ORG, settings)
    return OrgResponse.model_validate(org)


@router.patch("/{client_name}", response_model=OrgUpdatedResponse, tags=["Organizations"])
async def update_org(
    client_name: str,
    body: OrgUpdateRequest,
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    await org_service.update_org(storage, settings, client_name, body, identity)
    return OrgUpdatedResponse()


@router.delete("/{client_name}", response_model=OrgDeletedResponse, tags=["Organizations"])
async def delete_org(
    client_name: str,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    await org_service.delete_org(storage, client_name)
    return OrgDeletedResponse(client_name=client_name)
