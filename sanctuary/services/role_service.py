"""Role service — role CRUD, assignments, and permission lookup."""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Set

from sqlalchemy.orm import Session

from sanctuary.core.config import settings
from sanctuary.core.exceptions import ResourceNotFoundError, ResourceConflictError
from sanctuary.core.permissions import (
    PermissionSet,
    active_assignments,
    is_expired,
    is_owner,
    normalize_permissions,
)
from sanctuary.models.role import Role, UserRole
from sanctuary.models.user import User

logger = logging.getLogger("sanctuary")

_EDITABLE_FIELDS = ("display_name", "description", "color", "icon", "is_active", "priority")


def role_snapshot(role: Role) -> Dict[str, Any]:
    """Plain dict of a role, used for audit before/after values."""
    return {
        "id": role.id,
        "name": role.name,
        "display_name": role.display_name,
        "priority": role.priority,
        "is_active": role.is_active,
        "permissions": role.permissions,
    }


class RoleService:
    """Manages roles and their assignment to users."""

    # ---- Roles ----
    @staticmethod
    def list_roles(db: Session, include_inactive: bool = True) -> List[Role]:
        query = db.query(Role)
        if not include_inactive:
            query = query.filter(Role.is_active.is_(True))
        return query.order_by(Role.priority.desc(), Role.id).all()

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def get_role_by_name(db: Session, name: str) -> Optional[Role]:
        return db.query(Role).filter(Role.name == name).first()

    @staticmethod
    def create_role(
        db: Session,
        name: str,
        display_name: str,
        permissions: Optional[dict] = None,
        priority: int = 0,
        description: str = "",
        color: str = "purple",
        icon: str = "shield",
        is_system: bool = False,
    ) -> Role:
        """Create a role. Raises ResourceConflictError on a duplicate name."""
        if RoleService.get_role_by_name(db, name):
            raise ResourceConflictError(f"Role '{name}' already exists")

        role = Role(
            name=name,
            display_name=display_name,
            description=description,
            color=color,
            icon=icon,
            is_system=is_system,
            is_active=True,
            priority=priority,
        )
        role.permissions = normalize_permissions(permissions or {})
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Created role %s (priority %s)", name, priority)
        return role

    @staticmethod
    def update_role(db: Session, role_id: int, permissions: Optional[dict] = None, **fields: Any) -> Role:
        """Update editable fields; ``permissions`` replaces the whole matrix."""
        role = RoleService.get_role(db, role_id)
        for field in _EDITABLE_FIELDS:
            if fields.get(field) is not None:
                setattr(role, field, fields[field])
        if permissions is not None:
            role.permissions = normalize_permissions(permissions)
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def delete_role(db: Session, role_id: int) -> None:
        role = RoleService.get_role(db, role_id)
        if role.is_system:
            raise ResourceConflictError("Cannot delete system role")
        name = role.name
        db.query(UserRole).filter(UserRole.role_id == role_id).delete()
        db.delete(role)
        db.commit()
        logger.info("Deleted role %s", name)

    # ---- Assignments ----
    @staticmethod
    def get_user_roles(db: Session, user_id: int, include_inactive: bool = False) -> List[UserRole]:
        """Assignments for a user; by default only those currently in effect."""
        query = db.query(UserRole).filter(UserRole.user_id == user_id)
        if include_inactive:
            return query.order_by(UserRole.id).all()
        rows = query.filter(UserRole.is_active.is_(True)).order_by(UserRole.id).all()
        return active_assignments(rows)

    @staticmethod
    def assign_role(
        db: Session,
        user_id: int,
        role_id: int,
        assigned_by: Optional[int],
        context: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserRole:
        """Give ``user_id`` an active assignment of ``role_id``.

        Raises:
            ResourceNotFoundError: unknown user or role.
            ResourceConflictError: the user already holds the role actively.
        """
        if not db.query(User).filter(User.id == user_id).first():
            raise ResourceNotFoundError(f"User {user_id} not found")
        RoleService.get_role(db, role_id)

        if user_id in RoleService._current_holders(db, role_id, [user_id]):
            raise ResourceConflictError(f"User {user_id} already holds role {role_id}")

        assignment = UserRole(
            user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
            context=context,
            expires_at=expires_at,
            is_active=True,
        )
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
        return assignment

    @staticmethod
    def _current_holders(db: Session, role_id: int, user_ids: List[int]) -> Set[int]:
        """Users among ``user_ids`` with an unexpired active assignment of the role.

        Active rows whose expiry has passed are deactivated on the way.
        """
        holders = set()
        rows = db.query(UserRole).filter(
            UserRole.role_id == role_id,
            UserRole.is_active.is_(True),
            UserRole.user_id.in_(user_ids),
        ).all()
        for row in rows:
            if is_expired(row):
                row.is_active = False
            else:
                holders.add(row.user_id)
        return holders

    @staticmethod
    def revoke_role(db: Session, user_id: int, role_id: int) -> int:
        """Deactivate every active assignment of the role. Returns rows changed."""
        updated = db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
            UserRole.is_active.is_(True),
        ).update({"is_active": False}, synchronize_session="fetch")
        db.commit()
        if not updated:
            raise ResourceNotFoundError(f"User {user_id} has no active role {role_id}")
        return updated

    @staticmethod
    def bulk_assign_role(
        db: Session,
        user_ids: List[int],
        role_id: int,
        assigned_by: Optional[int],
        context: Optional[str] = None,
    ) -> int:
        """Assign one role to many users, skipping those who already hold it."""
        RoleService.get_role(db, role_id)
        holders = RoleService._current_holders(db, role_id, user_ids)
        known = {row.id for row in db.query(User.id).filter(User.id.in_(user_ids))}
        created = 0
        for user_id in dict.fromkeys(user_ids):
            if user_id in holders or user_id not in known:
                continue
            db.add(UserRole(
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                context=context,
                is_active=True,
            ))
            created += 1
        db.commit()
        return created

    # ---- Permissions ----
    @staticmethod
    def get_permission_set(db: Session, user: User) -> PermissionSet:
        """Resolve the effective permissions of ``user``."""
        assignments = RoleService.get_user_roles(db, user.id)
        owner = is_owner(
            email=user.email,
            account_role=user.account_role,
            assignments=assignments,
            owner_email=settings.OWNER_EMAIL,
        )
        return PermissionSet.from_assignments(assignments, owner=owner)

    @staticmethod
    def has_permission(db: Session, user: User, resource: str, action: str) -> bool:
        return RoleService.get_permission_set(db, user).has_permission(resource, action)


role_service = RoleService()
