"""
Shared fixtures: in-memory SQLite storage and app clients.
"""

from __future__ import annotations

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.auth import create_dev_token
from app.core.config import Settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.identity import CallerIdentity
from app.core.storage import SqlStorage
from app.main import create_app, startup
from app.services.tiers import DEFAULT_TIERS, seed_tiers

TEST_SECRET = "tenantgate-test-secret-0123456789abcdef"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        jwt_secret=TEST_SECRET,
        log_format="text",
        log_level="warning",
    )


@pytest.fixture
async def storage(settings):
    engine = create_engine(settings)
    await init_db(engine)
    store = SqlStorage(create_session_factory(engine))
    await seed_tiers(store, DEFAULT_TIERS)
    yield store
    await engine.dispose()


@pytest.fixture
def make_identity():
    def _make(
        email: str,
        subject: Optional[str] = None,
        role: Optional[str] = None,
        name: Optional[str] = None,
    ) -> CallerIdentity:
        return CallerIdentity(
            subject_id=subject or f"{email.split('@')[0]}-sub",
            email=email,
            name=name,
            role=role,
        )

    return _make


@pytest.fixture
async def app(settings):
    # ASGITransport does not run startup handlers.
    application = create_app(settings)
    await startup(application)
    yield application
    await application.state.engine.dispose()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(settings):
    """Bearer headers for a dev token: ``auth_headers("bob@acme.com", role=...)``."""

    def _headers(
        email: str,
        subject: Optional[str] = None,
        role: Optional[str] = None,
        name: Optional[str] = None,
    ) -> dict:
        token = create_dev_token(
            settings,
            subject or f"{email.split('@')[0]}-sub",
            email,
            name=name,
            role=role,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
