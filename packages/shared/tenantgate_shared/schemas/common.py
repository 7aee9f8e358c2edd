from enum import Enum
from typing import Optional

from pydantic import BaseModel


class MembershipRole(str, Enum):
    ADMIN = "admin"
    VIEWER = "viewer"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"


class JoinStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrgType(str, Enum):
    STANDARD = "standard"
    LEGAL_ENTITY = "legal_entity"
    LE_ORG = "le_org"


class TierCode(str, Enum):
    L0 = "L0"
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    LE = "LE"

# Ordered lowest to highest
TIER_ORDER: list["TierCode"] = [
    TierCode.L0,
    TierCode.L1,
    TierCode.L2,
    TierCode.L3,
    TierCode.LE,
]

class Capability(str, Enum):
    ADMINISTER_ORG = "administer_org"
    VIEW_ORG = "view_org"
    PLATFORM_ADMIN = "platform_admin"

class NamedRole(str, Enum):
    """Roles accepted by endpoint-level guards."""
    ADMIN = "admin"
    LE_ADMIN = "LE_ADMIN"
    VIEWER = "viewer"

class UsageAction(str, Enum):
    ADD_APP = "addApp"
    EDIT = "edit"
    RUN = "run"

class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    context: Optional[dict] = None

class ErrorResponse(BaseModel):
    error: ErrorBody
