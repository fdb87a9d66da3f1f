"""Roles API router — role CRUD and user-role assignment."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sanctuary.db.session import get_db
from sanctuary.schemas.schemas import (
    RoleCreate, RoleUpdate, RoleOut,
    UserRoleAssign, UserRoleOut, BulkAssignRequest, MessageResponse,
)
from sanctuary.services.role_service import role_service, role_snapshot
from sanctuary.services.audit_service import audit_service
from sanctuary.core.permissions import PermissionSet
from sanctuary.core.security import (
    get_current_user,
    get_permissions,
    require_roles_view,
    require_roles_create,
    require_roles_edit,
    require_roles_delete,
    require_roles_assign,
)
from sanctuary.core.exceptions import forbidden
from sanctuary.models.user import User

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("/", response_model=List[RoleOut])
async def list_roles(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_view),
):
    """List all roles, highest priority first."""
    return [RoleOut.model_validate(r) for r in role_service.list_roles(db)]


@router.post("/", response_model=RoleOut, status_code=201)
async def create_role(
    body: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_create),
):
    """Create a custom (non-system) role."""
    role = role_service.create_role(
        db,
        name=body.name,
        display_name=body.display_name,
        permissions=body.permissions,
        priority=body.priority,
        description=body.description,
        color=body.color,
        icon=body.icon,
    )
    audit_service.log_from_request(
        db, request,
        action="role.created",
        entity_type="role",
        entity_id=role.id,
        performed_by=user.id,
        role_id=role.id,
        new_value=role_snapshot(role),
    )
    return RoleOut.model_validate(role)


@router.post("/bulk-assign", response_model=MessageResponse)
async def bulk_assign(
    body: BulkAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_assign),
):
    """Assign one role to many users."""
    created = role_service.bulk_assign_role(
        db, body.user_ids, body.role_id, assigned_by=user.id, context=body.context,
    )
    audit_service.log_from_request(
        db, request,
        action="role.bulk_assigned",
        entity_type="user_role",
        entity_id=body.role_id,
        performed_by=user.id,
        role_id=body.role_id,
        new_value={"user_ids": body.user_ids, "created": created},
    )
    return MessageResponse(message=f"Assigned role to {created} users")


@router.get("/user/{user_id}", response_model=List[UserRoleOut])
async def get_user_roles(
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    permissions: PermissionSet = Depends(get_permissions),
):
    """Active role assignments of a user. Users may always read their own."""
    if user_id != user.id and not permissions.has_permission("roles", "view"):
        raise forbidden()
    return [UserRoleOut.model_validate(a) for a in role_service.get_user_roles(db, user_id)]


@router.post("/user/{user_id}", response_model=UserRoleOut, status_code=201)
async def assign_role(
    user_id: int,
    body: UserRoleAssign,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_assign),
):
    """Assign a role to a user."""
    assignment = role_service.assign_role(
        db, user_id, body.role_id,
        assigned_by=user.id,
        context=body.context,
        expires_at=body.expires_at,
    )
    audit_service.log_from_request(
        db, request,
        action="role.assigned",
        entity_type="user_role",
        entity_id=assignment.id,
        performed_by=user.id,
        target_user_id=user_id,
        role_id=body.role_id,
        notes=body.context,
    )
    return UserRoleOut.model_validate(assignment)


@router.delete("/user/{user_id}/{role_id}", response_model=MessageResponse)
async def revoke_role(
    user_id: int,
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_assign),
):
    """Revoke a role from a user (the assignment is kept, deactivated)."""
    role_service.revoke_role(db, user_id, role_id)
    audit_service.log_from_request(
        db, request,
        action="role.revoked",
        entity_type="user_role",
        entity_id=role_id,
        performed_by=user.id,
        target_user_id=user_id,
        role_id=role_id,
    )
    return MessageResponse(message="Role revoked")


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_view),
):
    return RoleOut.model_validate(role_service.get_role(db, role_id))


@router.put("/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: int,
    body: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_edit),
):
    """Update a role. A supplied permission matrix replaces the old one."""
    previous = role_snapshot(role_service.get_role(db, role_id))
    fields = body.model_dump(exclude_unset=True)
    role = role_service.update_role(db, role_id, **fields)
    audit_service.log_from_request(
        db, request,
        action="role.updated",
        entity_type="role",
        entity_id=role.id,
        performed_by=user.id,
        role_id=role.id,
        previous_value=previous,
        new_value=role_snapshot(role),
    )
    return RoleOut.model_validate(role)


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_delete),
):
    """Delete a custom role. System roles are protected."""
    previous = role_snapshot(role_service.get_role(db, role_id))
    role_service.delete_role(db, role_id)
    audit_service.log_from_request(
        db, request,
        action="role.deleted",
        entity_type="role",
        entity_id=role_id,
        performed_by=user.id,
        role_id=role_id,
        previous_value=previous,
    )
    return MessageResponse(message="Role deleted")
