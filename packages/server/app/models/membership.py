"""User membership and join request models."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import created_at_field, tables


class UserMembership(SQLModel, table=True):
    __tablename__ = tables.users

    email: str = Field(primary_key=True)
    name: str = Field(nullable=False)
    tenant_key: str = Field(nullable=False, index=True)
    role: str = Field(default="viewer", nullable=False)  # admin | viewer
    status: str = Field(default="pending_approval", nullable=False)  # active | pending_approval
    partner_code: Optional[str] = None
    user_id: Optional[str] = None  # identity subject, once known
    invited_by: Optional[str] = None
    created_at: datetime = created_at_field()


class JoinRequest(SQLModel, table=True):
    __tablename__ = tables.pending_joins

    join_id: str = Field(primary_key=True)  # "<email>:<tenant_key>"
    email: str = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    tenant_key: str = Field(nullable=False, index=True)
    message: str = Field(default="", nullable=False)
    status: str = Field(default="pending", nullable=False)  # pending | approved | rejected
    user_id: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = created_at_field()


def join_id_for(email: str, tenant_key: str) -> str:
    return f"{email}:{tenant_key}"
