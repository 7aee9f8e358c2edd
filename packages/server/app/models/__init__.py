# SQLModel definitions, imported here to ensure metadata is populated for init_db.
from .organization import Organization  # noqa: F401
from .membership import JoinRequest, UserMembership  # noqa: F401
from .subscription import RoleDefinition, Subscription, TierDefinition  # noqa: F401
