"""
Authentication and caller resolution for tenantgate.

Supports:
- Bearer identity tokens verified with PyJWT, against a JWKS endpoint
  (RS256, Cognito-style pools) or a shared secret for local dev
- Token-use and audience/client-id checks
- Caller resolution: identity + home membership + subscription level
- Named-role and platform-admin dependencies for routers
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from app.core.config import Settings, get_app_settings
from app.core.errors import ExpiredToken, Forbidden, InvalidToken
from app.core.identity import Caller, CallerIdentity, identity_from_claims
from app.core.storage import Storage, get_storage
from app.models.membership import UserMembership
from app.models.subscription import Subscription
from app.services.authorization import require_named_roles

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

ALLOWED_TOKEN_USE = {"id", "access"}


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

class JwtTokenVerifier:
    """Verify bearer tokens and return the claim set."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._jwks_client = jwt.PyJWKClient(settings.jwks_url) if settings.jwks_url else None

    async def _signing_key(self, token: str) -> tuple[Any, list[str]]:
        if self._jwks_client is None:
            return self.settings.jwt_secret, [self.settings.jwt_algorithm]
        try:
            signing_key = await asyncio.to_thread(
                self._jwks_client.get_signing_key_from_jwt, token
            )
        except jwt.PyJWKClientError as exc:
            raise InvalidToken("Unable to resolve token signing key", reason=str(exc)) from exc
        return signing_key.key, ["RS256"]

    async def verify(self, token: str) -> dict[str, Any]:
        """Decode and validate ``token``. Raises InvalidToken / ExpiredToken."""
        key, algorithms = await self._signing_key(token)
        options = {"require": ["exp", "sub"], "verify_aud": False}
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                issuer=self.settings.jwt_issuer or None,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredToken("Token has expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidToken("Invalid token", reason=str(exc)) from exc

        token_use = claims.get("token_use")
        if token_use not in ALLOWED_TOKEN_USE:
            raise InvalidToken("Unsupported token use", token_use=token_use)

        client_id = self.settings.jwt_client_id
        if client_id:
            audience = claims.get("aud")
            audiences = audience if isinstance(audience, list) else [audience]
            if client_id not in audiences and claims.get("client_id") != client_id:
                raise InvalidToken("Token was not issued for this client", client_id=client_id)

        return claims


def create_dev_token(
    settings: Settings,
    subject: str,
    email: str,
    *,
    name: Optional[str] = None,
    role: Optional[str] = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a shared-secret token (local development and tests)."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "token_use": "id",
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    if name:
        payload["name"] = name
    if role:
        payload[settings.role_claim] = role
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    if settings.jwt_client_id:
        payload["aud"] = settings.jwt_client_id
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

def get_token_verifier(request: Request) -> JwtTokenVerifier:
    return request.app.state.token_verifier


async def get_identity(
    authorization: Optional[str] = Depends(api_key_header),
    verifier: JwtTokenVerifier = Depends(get_token_verifier),
    settings: Settings = Depends(get_app_settings),
) -> CallerIdentity:
    """Main authentication dependency: bearer token -> caller identity."""
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidToken("Authentication required")

    claims = await verifier.verify(authorization[7:].strip())
    identity = identity_from_claims(claims, role_claim=settings.role_claim)
    structlog.contextvars.bind_contextvars(caller=identity.email)
    return identity


async def load_caller(identity: CallerIdentity, storage: Storage) -> Caller:
    """Attach the caller's home membership and its tenant's subscription level."""
    membership = await storage.get(UserMembership, identity.email)
    level = None
    if membership is not None:
        subscription = await storage.get(Subscription, membership.tenant_key)
        level = subscription.subscription_level if subscription else None
    return Caller(identity, membership=membership, subscription_level=level)


async def get_caller(
    identity: CallerIdentity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
) -> Caller:
    return await load_caller(identity, storage)


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_platform_admin(
    identity: CallerIdentity = Depends(get_identity),
    settings: Settings = Depends(get_app_settings),
) -> CallerIdentity:
    """Requires the configured platform-admin role claim."""
    if identity.role != settings.platform_admin_role:
        raise Forbidden("Only platform admins allowed", capability="platform_admin")
    return identity


def require_roles(*roles: str):
    """Dependency factory: caller must hold one of the named roles."""
    async def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        require_named_roles(caller, roles)
        return caller

    return dependency
