"""Invites API router — create, list, and redeem role invites."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sanctuary.db.session import get_db
from sanctuary.schemas.schemas import InviteCreate, InviteOut, UserRoleOut
from sanctuary.services.invite_service import invite_service
from sanctuary.services.audit_service import audit_service
from sanctuary.core.security import get_current_user, require_roles_assign, require_roles_view
from sanctuary.models.user import User

router = APIRouter(prefix="/invites", tags=["invites"])


@router.post("/", response_model=InviteOut, status_code=201)
async def create_invite(
    body: InviteCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_assign),
):
    invite = invite_service.create_invite(
        db,
        role_id=body.role_id,
        created_by=user.id,
        email=body.email,
        max_uses=body.max_uses,
        message=body.message,
        expires_at=body.expires_at,
    )
    audit_service.log_from_request(
        db, request,
        action="invite.created",
        entity_type="invite",
        entity_id=invite.id,
        performed_by=user.id,
        role_id=invite.role_id,
        new_value={"email": invite.email, "max_uses": invite.max_uses},
    )
    return InviteOut.model_validate(invite)


@router.get("/", response_model=List[InviteOut])
async def list_invites(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles_view),
):
    return [InviteOut.model_validate(i) for i in invite_service.list_invites(db)]


@router.post("/{code}/redeem", response_model=UserRoleOut)
async def redeem_invite(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Redeem an invite for the calling user."""
    assignment = invite_service.redeem_invite(db, code, user)
    audit_service.log_from_request(
        db, request,
        action="invite.redeemed",
        entity_type="user_role",
        entity_id=assignment.id,
        performed_by=user.id,
        target_user_id=user.id,
        role_id=assignment.role_id,
    )
    return UserRoleOut.model_validate(assignment)
