"""Seed the owner account from env vars and give it the owner role."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from sanctuary.core.config import settings
from sanctuary.core.permissions import OWNER_ACCOUNT_ROLE, OWNER_ROLE_NAME
from sanctuary.core.security import hash_password
from sanctuary.models.role import Role, UserRole
from sanctuary.models.user import User

logger = logging.getLogger("sanctuary")


def seed_owner(db: Session, email: Optional[str] = None, password: Optional[str] = None) -> Optional[User]:
    """Create the owner user if missing and make sure it holds the owner role."""
    email = email or settings.OWNER_EMAIL
    if not email:
        logger.warning("OWNER_EMAIL not set, skipping owner seed")
        return None

    owner_role = db.query(Role).filter(Role.name == OWNER_ROLE_NAME).first()
    if not owner_role:
        logger.warning("Owner role not found. Run seed_roles first.")
        return None

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(
            email=email,
            hashed_password=hash_password(password or settings.OWNER_PASSWORD),
            full_name="Owner",
            account_role=OWNER_ACCOUNT_ROLE,
            is_active=True,
        )
        db.add(user)
        db.flush()
        logger.info("Created owner account %s", email)

    held = db.query(UserRole).filter(
        UserRole.user_id == user.id,
        UserRole.role_id == owner_role.id,
        UserRole.is_active.is_(True),
    ).first()
    if held is None:
        db.add(UserRole(
            user_id=user.id,
            role_id=owner_role.id,
            assigned_by=user.id,
            context="owner seed",
            is_active=True,
        ))
    db.commit()
    return user
