"""
Tier and role catalogue endpoints (platform admin for writes).

GET    /api/v1/tiers               - List tiers
GET    /api/v1/tiers/{subLevel}    - Get a tier
POST   /api/v1/tiers               - Create or replace a tier
DELETE /api/v1/tiers/{subLevel}    - Delete a tier
GET    /api/v1/roles               - List role definitions
GET    /api/v1/roles/{roleId}      - Get a role definition
POST   /api/v1/roles               - Create or replace a role definition
DELETE /api/v1/roles/{roleId}      - Delete a role definition
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.auth import get_identity, require_platform_admin
from app.core.identity import CallerIdentity
from app.core.storage import Storage, get_storage
from app.services import roles as role_service
from app.services import tiers as tier_service
from tenantgate_shared.schemas.subscriptions import (
    RoleConfig,
    RoleDeletedResponse,
    RoleListResponse,
    RoleSavedResponse,
    TierConfig,
    TierDeletedResponse,
    TierListResponse,
    TierSavedResponse,
)

tiers_router = APIRouter()
roles_router = APIRouter()


@tiers_router.get("", response_model=TierListResponse, tags=["Tiers"])
async def list_tiers(
    _: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    tiers = await tier_service.list_tiers(storage)
    return TierListResponse(data=[TierConfig.model_validate(t) for t in tiers])


@tiers_router.get("/{sub_level}", response_model=TierConfig, tags=["Tiers"])
async def get_tier(
    sub_level: str,
    _: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    return TierConfig.model_validate(await tier_service.get_tier_limits(storage, sub_level))


@tiers_router.post("", response_model=TierSavedResponse, tags=["Tiers"])
async def save_tier(
    body: TierConfig,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    await tier_service.create_or_update_tier(storage, body)
    return TierSavedResponse(sub_level=body.sub_level)


@tiers_router.delete("/{sub_level}", response_model=TierDeletedResponse, tags=["Tiers"])
async def delete_tier(
    sub_level: str,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    await tier_service.delete_tier(storage, sub_level)
    return TierDeletedResponse(sub_level=sub_level)


@roles_router.get("", response_model=RoleListResponse, tags=["Roles"])
async def list_roles(
    _: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    roles = await role_service.list_roles(storage)
    return RoleListResponse(data=[RoleConfig.model_validate(r) for r in roles])


@roles_router.get("/{role_id}", response_model=RoleConfig, tags=["Roles"])
async def get_role(
    role_id: str,
    _: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
):
    return RoleConfig.model_validate(await role_service.get_role(storage, role_id))


@roles_router.post("", response_model=RoleSavedResponse, tags=["Roles"])
async def save_role(
    body: RoleConfig,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    await role_service.create_or_update_role(storage, body)
    return RoleSavedResponse(role_id=body.role_id)


@roles_router.delete("/{role_id}", response_model=RoleDeletedResponse, tags=["Roles"])
async def delete_role(
    role_id: str,
    _: CallerIdentity = Depends(require_platform_admin),
    storage: Storage = Depends(get_storage),
):
    await role_service.delete_role(storage, role_id)
    return RoleDeletedResponse(role_id=role_id)
