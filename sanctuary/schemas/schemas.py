"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=4)

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1)


# ---- User ----
class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    account_role: str = "member"
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Role ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_\-]+$")
    display_name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    color: str = "purple"
    icon: str = "shield"
    priority: int = 0
    permissions: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

class RoleUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    permissions: Optional[Dict[str, Dict[str, Any]]] = None

class RoleOut(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_system: bool = False
    is_active: bool = True
    priority: int = 0
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Assignments ----
class UserRoleAssign(BaseModel):
    role_id: int
    context: Optional[str] = None
    expires_at: Optional[datetime] = None

class BulkAssignRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    role_id: int
    context: Optional[str] = None

class UserRoleOut(BaseModel):
    id: int
    user_id: int
    role_id: int
    is_active: bool
    assigned_by: Optional[int] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    context: Optional[str] = None
    role: RoleOut

    class Config:
        from_attributes = True


# ---- Permissions ----
class PermissionCheck(BaseModel):
    resource: str
    action: str

class CheckMode(str, Enum):
    ANY = "any"
    ALL = "all"

class PermissionCheckRequest(BaseModel):
    checks: List[PermissionCheck] = Field(default_factory=list)
    mode: CheckMode = CheckMode.ALL

class PermissionCheckResponse(BaseModel):
    allowed: bool
    mode: CheckMode
    results: List[Dict[str, Any]] = Field(default_factory=list)

class EffectivePermissionsOut(BaseModel):
    user_id: int
    is_owner: bool
    permissions: Dict[str, Dict[str, bool]]
    primary_role: Optional[RoleOut] = None
    roles: List[UserRoleOut] = Field(default_factory=list)


# ---- Invites ----
class InviteCreate(BaseModel):
    role_id: int
    email: Optional[str] = None
    max_uses: int = Field(1, ge=1)
    message: Optional[str] = None
    expires_at: Optional[datetime] = None

class InviteOut(BaseModel):
    id: int
    code: str
    email: Optional[str] = None
    role_id: int
    max_uses: int
    used_count: int
    is_active: bool
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Audit ----
class RoleAuditLogOut(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: int
    performed_by: Optional[int] = None
    target_user_id: Optional[int] = None
    role_id: Optional[int] = None
    previous_value_json: Optional[str] = None
    new_value_json: Optional[str] = None
    ip_address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- AI assist ----
class AssistRequest(BaseModel):
    question: str = Field(..., min_length=1)
    context: str = ""


class AssistResponse(BaseModel):
    answer: str


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[str] = None
