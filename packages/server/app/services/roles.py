"""Role definition catalogue (declarative endpoint permissions)."""

from __future__ import annotations

import structlog

from app.core.errors import RoleNotFound
from app.core.storage import Storage
from app.models.subscription import RoleDefinition
from tenantgate_shared.schemas.subscriptions import RoleConfig

log = structlog.get_logger()


async def create_or_update_role(storage: Storage, role: RoleConfig) -> RoleDefinition:
    saved = await storage.insert(RoleDefinition(**role.model_dump()), overwrite=True)
    log.info("role.saved", role_id=role.role_id)
    return saved


async def get_role(storage: Storage, role_id: str) -> RoleDefinition:
    role = await storage.get(RoleDefinition, role_id)
    if role is None:
        raise RoleNotFound("Role not found", role_id=role_id)
    return role


async def list_roles(storage: Storage) -> list[RoleDefinition]:
    return sorted(await storage.find(RoleDefinition), key=lambda r: r.role_id)


async def delete_role(storage: Storage, role_id: str) -> None:
    if not await storage.delete(RoleDefinition, role_id):
        raise RoleNotFound("Role not found", role_id=role_id)
    log.info("role.deleted", role_id=role_id)
