"""Permissions API router — effective permissions of the caller."""

from fastapi import APIRouter, Depends

from sanctuary.schemas.schemas import (
    EffectivePermissionsOut,
    PermissionCheckRequest,
    PermissionCheckResponse,
    CheckMode,
    RoleOut,
    UserRoleOut,
)
from sanctuary.core.permissions import PermissionSet
from sanctuary.core.security import get_current_user, get_permissions
from sanctuary.models.user import User

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("/me", response_model=EffectivePermissionsOut)
async def my_permissions(
    user: User = Depends(get_current_user),
    permissions: PermissionSet = Depends(get_permissions),
):
    """Effective permission matrix, owner flag, and primary role."""
    primary = permissions.primary_role
    return EffectivePermissionsOut(
        user_id=user.id,
        is_owner=permissions.is_owner,
        permissions=permissions.effective,
        primary_role=RoleOut.model_validate(primary.role) if primary else None,
        roles=[UserRoleOut.model_validate(a) for a in permissions.assignments],
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permissions(
    body: PermissionCheckRequest,
    permissions: PermissionSet = Depends(get_permissions),
):
    """Evaluate several resource/action checks at once."""
    checks = [(c.resource, c.action) for c in body.checks]
    if body.mode == CheckMode.ANY:
        allowed = permissions.has_any_permission(checks)
    else:
        allowed = permissions.has_all_permissions(checks)
    return PermissionCheckResponse(
        allowed=allowed,
        mode=body.mode,
        results=[
            {"resource": r, "action": a, "allowed": permissions.has_permission(r, a)}
            for r, a in checks
        ],
    )
