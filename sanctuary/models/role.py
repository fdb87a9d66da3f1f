"""Role and user-role assignment models for RBAC."""

import json

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from sanctuary.db.base import Base


class Role(Base):
    """Named permission matrix with a conflict-resolving priority."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    color = Column(String(50), default="purple")
    icon = Column(String(50), default="shield")
    is_system = Column(Boolean, default=False, nullable=False)  # system roles can't be deleted
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    permissions_json = Column(Text, nullable=True)  # JSON {resource: {action: bool}}
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def permissions(self) -> dict:
        if not self.permissions_json:
            return {}
        return json.loads(self.permissions_json)

    @permissions.setter
    def permissions(self, value: dict) -> None:
        self.permissions_json = json.dumps(value or {})


class UserRole(Base):
    """Assignment of a role to a user.

    Revoking deactivates the row instead of deleting it, so a user may hold
    several inactive rows for the same role as history.
    """
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Integer, nullable=True)
    assigned_at = Column(DateTime, server_default=func.now(), nullable=False)
    expires_at = Column(DateTime, nullable=True)  # null = no expiration
    context = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = relationship("Role", lazy="joined")
