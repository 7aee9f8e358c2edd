"""
Script to register a local organization admin and print a dev token for them.

    python -m app.scripts.create_local_admin --email alice@acme.dev --tier L3
"""

import argparse
import asyncio
from typing import Optional

from app.core.auth import create_dev_token
from app.core.config import Settings, get_settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.identity import CallerIdentity
from app.core.storage import SqlStorage
from app.services.memberships import register_or_join
from app.services.subscriptions import update_subscription
from app.services.tiers import DEFAULT_TIERS, load_tier_catalog, seed_tiers


async def create_admin(
    settings: Settings,
    email: str,
    name: Optional[str] = None,
    tier: Optional[str] = None,
    role: Optional[str] = None,
) -> tuple[dict, str]:
    """Register ``email`` (creating its org when new) and mint a token for it.

    Returns the registration result and the bearer token.
    """
    engine = create_engine(settings)
    try:
        await init_db(engine)
        storage = SqlStorage(create_session_factory(engine))
        catalog = load_tier_catalog(settings.tiers_file) if settings.tiers_file else DEFAULT_TIERS
        await seed_tiers(storage, catalog)

        subject = f"local-{email.split('@')[0]}"
        identity = CallerIdentity(subject_id=subject, email=email, name=name, role=role)
        result = await register_or_join(
            storage,
            settings,
            email=email,
            name=name or email.split("@")[0],
            creator=identity,
            legal_entity=role == settings.legal_entity_role,
        )
        if tier and result["joined"]:
            await update_subscription(storage, result["client_name"], {"tier": tier})
    finally:
        await engine.dispose()

    token = create_dev_token(settings, subject, email, name=name, role=role)
    return result, token


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local organization admin.")
    parser.add_argument("--email", required=True, help="Business email address for the admin")
    parser.add_argument("--name", help="Display name")
    parser.add_argument("--tier", help="Tier to put the organization on (e.g. L3)")
    parser.add_argument("--role", help="Global role claim (platform_admin, LE_ADMIN)")

    args = parser.parse_args()

    result, token = asyncio.run(
        create_admin(get_settings(), args.email, name=args.name, tier=args.tier, role=args.role)
    )
    print(f"{result['message']}: {result['client_name']}")
    print(f"Bearer token:\n{token}")
