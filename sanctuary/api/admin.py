"""Admin API router — user listing and role audit trail."""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sanctuary.db.session import get_db
from sanctuary.schemas.schemas import RoleAuditLogOut, UserOut
from sanctuary.services.audit_service import audit_service
from sanctuary.core.security import RequireAnyPermission, require_audit_view
from sanctuary.models.user import User

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users")
async def admin_list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(RequireAnyPermission([("users", "view"), ("roles", "assign")])),
):
    """List users (users.view or roles.assign)."""
    query = db.query(User)
    total = query.count()
    users = (
        query.order_by(User.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "users": [UserOut.model_validate(u) for u in users],
        "total": total,
        "page": page,
    }


@router.get("/audit")
async def get_audit_logs(
    action: Optional[str] = Query(None),
    role_id: Optional[int] = Query(None),
    target_user_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: User = Depends(require_audit_view),
):
    """Query the role audit trail (audit.view)."""
    result = audit_service.query_logs(db, role_id, target_user_id, action, page, page_size)
    return {
        "logs": [RoleAuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
    }
