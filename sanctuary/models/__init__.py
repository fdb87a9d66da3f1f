"""Models package — import all models so metadata sees every table."""

from sanctuary.models.role import Role, UserRole
from sanctuary.models.user import User
from sanctuary.models.invite import RoleInvite
from sanctuary.models.audit_log import RoleAuditLog

__all__ = ["Role", "UserRole", "User", "RoleInvite", "RoleAuditLog"]
