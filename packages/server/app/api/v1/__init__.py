"""
API v1 Router

Organizations are addressed by tenant key ("client name").
"""

from fastapi import APIRouter

from . import catalog, organizations, subscriptions, users

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])
router.include_router(catalog.tiers_router, prefix="/tiers", tags=["Tiers"])
router.include_router(catalog.roles_router, prefix="/roles", tags=["Roles"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/users",
            "/orgs",
            "/subscriptions",
            "/tiers",
            "/roles",
        ],
    }
