"""Invite service — onboard users with a role through a one-off code."""

import secrets
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy.orm import Session

from sanctuary.core.exceptions import (
    ResourceNotFoundError,
    ResourceConflictError,
    AuthorizationError,
)
from sanctuary.models.invite import RoleInvite
from sanctuary.models.role import UserRole
from sanctuary.models.user import User
from sanctuary.services.role_service import RoleService


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class InviteService:
    """Creates and redeems role invites."""

    @staticmethod
    def create_invite(
        db: Session,
        role_id: int,
        created_by: int,
        email: Optional[str] = None,
        max_uses: int = 1,
        message: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> RoleInvite:
        RoleService.get_role(db, role_id)
        invite = RoleInvite(
            code=secrets.token_urlsafe(16),
            email=email,
            role_id=role_id,
            max_uses=max_uses,
            used_count=0,
            is_active=True,
            created_by=created_by,
            message=message,
            expires_at=expires_at,
        )
        db.add(invite)
        db.commit()
        db.refresh(invite)
        return invite

    @staticmethod
    def list_invites(db: Session) -> List[RoleInvite]:
        return (
            db.query(RoleInvite)
            .filter(RoleInvite.is_active.is_(True))
            .order_by(RoleInvite.created_at.desc(), RoleInvite.id.desc())
            .all()
        )

    @staticmethod
    def get_invite(db: Session, code: str) -> RoleInvite:
        invite = db.query(RoleInvite).filter(
            RoleInvite.code == code,
            RoleInvite.is_active.is_(True),
        ).first()
        if not invite:
            raise ResourceNotFoundError("Invite not found or no longer active")
        return invite

    @staticmethod
    def redeem_invite(db: Session, code: str, user: User) -> UserRole:
        """Assign the invite's role to ``user`` and count the use.

        The invite deactivates once ``max_uses`` is reached.

        Raises:
            ResourceNotFoundError: unknown, inactive, or expired code.
            AuthorizationError: the invite is addressed to another email.
            ResourceConflictError: the user already holds the role.
        """
        invite = InviteService.get_invite(db, code)
        now = _utcnow()
        if invite.expires_at is not None and _as_aware(invite.expires_at) <= now:
            invite.is_active = False
            db.commit()
            raise ResourceNotFoundError("Invite has expired")
        if invite.email and invite.email.lower() != user.email.lower():
            raise AuthorizationError("Invite was issued to a different email")

        assignment = RoleService.assign_role(
            db,
            user_id=user.id,
            role_id=invite.role_id,
            assigned_by=invite.created_by,
            context=f"invite:{invite.code}",
        )

        invite.used_count = (invite.used_count or 0) + 1
        invite.last_used_at = now
        if invite.max_uses and invite.used_count >= invite.max_uses:
            invite.is_active = False
        db.commit()
        return assignment


invite_service = InviteService()
