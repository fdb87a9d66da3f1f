"""Auth service — JWT login and user management."""

from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from sanctuary.core.config import settings
from sanctuary.models.user import User
from sanctuary.core.security import hash_password, verify_password, create_access_token
from sanctuary.core.exceptions import (
    AuthenticationError,
    ResourceConflictError,
    ResourceNotFoundError,
)


class AuthService:
    """Handles authentication and user management."""

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Dict[str, Any]:
        """Authenticate user and return a JWT access token.

        Raises:
            AuthenticationError: If credentials are invalid.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        token_data = {
            "sub": str(user.id),
            "email": user.email,
            "account_role": user.account_role,
        }
        access_token = create_access_token(token_data)

        user.last_login_at = datetime.now(timezone.utc)
        db.commit()

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "account_role": user.account_role,
            },
        }

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        full_name: str,
        account_role: str = "member",
    ) -> User:
        """Create a new user.

        Emails are unique ignoring case, so a case variant of an existing
        account is rejected.
        """
        existing = db.query(User).filter(func.lower(User.email) == email.lower()).first()
        if existing:
            raise ResourceConflictError(f"User with email {email} already exists")

        user = User(
            email=email,
            hashed_password=hash_password(password),
            full_name=full_name,
            account_role=account_role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def register(db: Session, email: str, password: str, full_name: str) -> User:
        """Self-service signup. The configured owner address is reserved."""
        owner_email = settings.OWNER_EMAIL
        if owner_email and email.lower() == owner_email.lower():
            raise ResourceConflictError(f"Email {email} is reserved")
        return AuthService.create_user(db, email, password, full_name)

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        """Get a user by id."""
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user


auth_service = AuthService()
