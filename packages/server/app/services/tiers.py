"""
Tier catalogue: built-in defaults, YAML overrides and CRUD.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from app.core.errors import TierNotFound
from app.core.storage import Storage
from app.models.subscription import TierDefinition
from tenantgate_shared.schemas.common import TIER_ORDER
from tenantgate_shared.schemas.subscriptions import TierConfig

log = structlog.get_logger()

ALL_TABS = ["ISM", "E8", "Detections"]

# Limits of None are unlimited.
DEFAULT_TIERS: list[TierConfig] = [
    TierConfig(sub_level="L0", name="Free", max_edits=0, max_apps=0, run_quota=0, allowed_tabs=[]),
    TierConfig(
        sub_level="L1", name="Basic", max_edits=1, max_apps=1, run_quota=1, allowed_tabs=["Basic"]
    ),
    TierConfig(
        sub_level="L2", name="Standard", max_edits=2, max_apps=2, run_quota=2, allowed_tabs=["ISM", "E8"]
    ),
    TierConfig(
        sub_level="L3", name="Professional", max_edits=3, max_apps=5, run_quota=3, allowed_tabs=ALL_TABS
    ),
    TierConfig(
        sub_level="LE",
        name="Legal Entity",
        max_edits=None,
        max_apps=None,
        run_quota=None,
        allowed_tabs=ALL_TABS,
    ),
]


def tier_rank(code: str) -> int:
    """Position in the L0 < L1 < L2 < L3 < LE ordering; unknown codes sort first."""
    for rank, tier in enumerate(TIER_ORDER):
        if tier.value == code:
            return rank
    return -1


def load_tier_catalog(path: str | Path) -> list[TierConfig]:
    """Load and validate a tier catalogue from a YAML file.

    The file holds either a list of tiers or a mapping with a ``tiers`` list.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Tier catalogue not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or []

    if isinstance(raw, dict):
        raw = raw.get("tiers", [])
    return [TierConfig.model_validate(item) for item in raw]


async def seed_tiers(storage: Storage, catalog: list[TierConfig]) -> list[str]:
    """Insert catalogue tiers that are not stored yet; stored tiers win."""
    seeded = []
    for tier in catalog:
        if await storage.get(TierDefinition, tier.sub_level) is not None:
            continue
        await storage.insert(TierDefinition(**tier.model_dump()))
        seeded.append(tier.sub_level)
    if seeded:
        log.info("tiers.seeded", tiers=seeded)
    return seeded


async def get_tier_limits(storage: Storage, code: str) -> TierDefinition:
    tier = await storage.get(TierDefinition, code)
    if tier is None:
        raise TierNotFound(f"Tier '{code}' not found", sub_level=code)
    return tier


async def create_or_update_tier(storage: Storage, tier: TierConfig) -> TierDefinition:
    saved = await storage.insert(TierDefinition(**tier.model_dump()), overwrite=True)
    log.info("tier.saved", sub_level=tier.sub_level)
    return saved


async def list_tiers(storage: Storage) -> list[TierDefinition]:
    tiers = await storage.find(TierDefinition)
    return sorted(tiers, key=lambda t: (tier_rank(t.sub_level), t.sub_level))


async def delete_tier(storage: Storage, code: str) -> None:
    if not await storage.delete(TierDefinition, code):
        raise TierNotFound(f"Tier '{code}' not found", sub_level=code)
    log.info("tier.deleted", sub_level=code)
