"""Auth API router — login, register, me."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from sanctuary.db.session import get_db
from sanctuary.schemas.schemas import LoginRequest, RegisterRequest, TokenResponse, UserOut
from sanctuary.services.auth_service import auth_service
from sanctuary.core.security import get_current_user
from sanctuary.core.exceptions import AuthenticationError, ResourceConflictError
from sanctuary.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and return a JWT access token."""
    try:
        return auth_service.authenticate(db, body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post("/register", response_model=UserOut)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new member account. Roles are granted separately."""
    try:
        user = auth_service.register(db, body.email, body.password, body.full_name)
    except ResourceConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return UserOut.model_validate(user)


@router.get("/me", response_model=UserOut)
async def get_me(user: User = Depends(get_current_user)):
    """Get current user profile."""
    return UserOut.model_validate(user)
