"""JWT authentication and permission-based authorization dependencies."""

import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from sanctuary.core.config import settings
from sanctuary.core.permissions import PermissionSet
from sanctuary.db.session import get_db
from sanctuary.models.user import User
from sanctuary.services.role_service import role_service

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> int:
    """Extract user_id from the JWT Bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return int(user_id)


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    """Load the authenticated user; deactivated accounts are rejected."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or deactivated",
        )
    return user


def get_permissions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PermissionSet:
    """Resolve the caller's effective permissions for this request."""
    return role_service.get_permission_set(db, user)


def _denied(required) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": "Insufficient permissions", "required": required},
    )


class RequirePermission:
    """Dependency that checks a single resource/action permission."""

    def __init__(self, resource: str, action: str):
        self.resource = resource
        self.action = action

    def __call__(
        self,
        user: User = Depends(get_current_user),
        permissions: PermissionSet = Depends(get_permissions),
    ) -> User:
        if not permissions.has_permission(self.resource, self.action):
            raise _denied({"resource": self.resource, "action": self.action})
        return user


class RequireAnyPermission:
    """Dependency that passes when any one of several permissions holds."""

    def __init__(self, checks: List[Tuple[str, str]]):
        self.checks = list(checks)

    def __call__(
        self,
        user: User = Depends(get_current_user),
        permissions: PermissionSet = Depends(get_permissions),
    ) -> User:
        if not permissions.has_any_permission(self.checks):
            raise _denied([{"resource": r, "action": a} for r, a in self.checks])
        return user


def require_owner(
    user: User = Depends(get_current_user),
    permissions: PermissionSet = Depends(get_permissions),
) -> User:
    """Dependency restricting an endpoint to the owner."""
    if not permissions.is_owner:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Owner only")
    return user


# Convenience dependencies for role administration
require_roles_view = RequirePermission("roles", "view")
require_roles_create = RequirePermission("roles", "create")
require_roles_edit = RequirePermission("roles", "edit")
require_roles_delete = RequirePermission("roles", "delete")
require_roles_assign = RequirePermission("roles", "assign")
require_audit_view = RequirePermission("audit", "view")
