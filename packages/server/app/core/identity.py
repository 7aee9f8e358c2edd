"""
Caller identity normalized from a verified claim set.

The verifier (``app.core.auth``) is the only place tokens are decoded; the
rest of the service trusts ``subject_id`` and ``email`` verbatim from here.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import InvalidToken
from app.models.membership import UserMembership


class CallerIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: str
    email: str
    name: Optional[str] = None
    role: Optional[str] = None  # global role claim
    token_use: Optional[str] = None
    claims: dict[str, Any] = Field(default_factory=dict)

    @property
    def domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].lower()


def identity_from_claims(claims: dict[str, Any], *, role_claim: str) -> CallerIdentity:
    """Build a CallerIdentity from a verified claim set.

    ``role_claim`` names the issuer attribute holding the global role
    (``custom:role`` for Cognito-style pools); plain ``role`` is the fallback.
    """
    subject_id = claims.get("sub")
    email = claims.get("email")
    if not subject_id or not email:
        raise InvalidToken("Token is missing the subject or email claim")

    return CallerIdentity(
        subject_id=str(subject_id),
        email=str(email),
        name=claims.get("name"),
        role=claims.get(role_claim, claims.get("role")),
        token_use=claims.get("token_use"),
        claims=dict(claims),
    )


class Caller:
    """An identity plus what the service knows about it in its home tenant."""

    def __init__(
        self,
        identity: CallerIdentity,
        membership: Optional[UserMembership] = None,
        subscription_level: Optional[str] = None,
    ):
        self.identity = identity
        self.membership = membership
        self.subscription_level = subscription_level
        self.subject_id = identity.subject_id
        self.email = identity.email

    @property
    def tenant_key(self) -> Optional[str]:
        return self.membership.tenant_key if self.membership else None

    def __repr__(self) -> str:
        return f"Caller(email={self.email!r}, tenant_key={self.tenant_key!r})"
