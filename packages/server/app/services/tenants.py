"""Tenant key derivation from email and organization domains."""

from __future__ import annotations

from typing import Iterable

from app.core.errors import InvalidEmailDomain

LE_PREFIX = "LE_"


def _underscored(domain: str) -> str:
    return domain.strip().lower().replace(".", "_")


def email_domain(email: str) -> str:
    """Domain part of ``email``, lower-cased. Raises InvalidEmailDomain when malformed."""
    local, sep, domain = (email or "").strip().rpartition("@")
    if not sep or not local or not domain or "." not in domain:
        raise InvalidEmailDomain("Malformed email address", email=email)
    return domain.lower()


def is_generic_domain(domain: str, generic_domains: Iterable[str]) -> bool:
    return domain.strip().lower() in {d.lower() for d in generic_domains}


def tenant_key_from_domain(domain: str) -> str:
    """Standard tenant key for an organization domain: ``acme.com`` -> ``acme_com``."""
    key = _underscored(domain)
    if not key:
        raise InvalidEmailDomain("Organization domain is empty", domain=domain)
    return key


def resolve_tenant(email: str, generic_domains: Iterable[str]) -> str:
    """Tenant key for a user's email; generic mail providers are rejected."""
    domain = email_domain(email)
    if is_generic_domain(domain, generic_domains):
        raise InvalidEmailDomain(
            "Please use your business email address.", email=email, domain=domain
        )
    return tenant_key_from_domain(domain)


def resolve_legal_entity_tenant(le_domain: str, org_domain: str) -> str:
    """Composite key for an organization managed by a legal entity.

    Standard keys are lower-case, so the upper-case ``LE_`` prefix keeps the
    two key spaces disjoint.
    """
    return f"{LE_PREFIX}{tenant_key_from_domain(le_domain)}_{tenant_key_from_domain(org_domain)}"
