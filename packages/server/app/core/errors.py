"""
Service error taxonomy.

Every error is an ``HTTPException`` so services can raise it directly and the
boundary needs no translation table. ``code`` is the stable machine-readable
identifier; ``context`` carries the entity key, capability or limit name the
caller needs to self-diagnose.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code: int = 400
    code: str = "service_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(status_code=type(self).status_code, detail=message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


# Business-rule rejections
class InvalidEmailDomain(ServiceError):
    status_code, code = 400, "invalid_email_domain"


# Identity
class InvalidToken(ServiceError):
    status_code, code = 401, "invalid_token"


class ExpiredToken(ServiceError):
    status_code, code = 401, "expired_token"


# Authorization and tier limits
class Forbidden(ServiceError):
    status_code, code = 403, "forbidden"


class QuotaExceeded(ServiceError):
    status_code, code = 403, "quota_exceeded"


# Missing entities
class OrganizationNotFound(ServiceError):
    status_code, code = 404, "organization_not_found"


class JoinRequestNotFound(ServiceError):
    status_code, code = 404, "join_request_not_found"


class TierNotFound(ServiceError):
    status_code, code = 404, "tier_not_found"


class UserNotFound(ServiceError):
    status_code, code = 404, "user_not_found"


class SubscriptionNotFound(ServiceError):
    status_code, code = 404, "subscription_not_found"


class RoleNotFound(ServiceError):
    status_code, code = 404, "role_not_found"


# Conflicts
class DuplicateOrganization(ServiceError):
    status_code, code = 409, "duplicate_organization"


class DuplicateSubscription(ServiceError):
    status_code, code = 409, "duplicate_subscription"


class MembershipConflict(ServiceError):
    status_code, code = 409, "membership_conflict"


# Infrastructure
class StorageUnavailable(ServiceError):
    status_code, code = 503, "storage_unavailable"
