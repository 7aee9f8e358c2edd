"""Base helpers for SQLModel tables."""

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlmodel import Field

from app.core.config import get_settings

# Table names are deployment configuration, bound to the models when this
# module is imported. A Settings object handed to create_app cannot rename
# them; set TG_TABLES__* in the environment instead.
tables = get_settings().tables


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def created_at_field():
    return Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


def json_list_field():
    return Field(default_factory=list, sa_type=sa.JSON, nullable=False)
