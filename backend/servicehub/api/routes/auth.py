"""Authentication routes.

- POST /auth/register: create a customer or provider account, get a JWT
- POST /auth/login: exchange email and password for a JWT
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from servicehub.api.dependencies import get_db
from servicehub.models.users import User, UserRole
from servicehub.services.auth_service import AuthService, LoginData, RegisterData


router = APIRouter(prefix="/auth", tags=["Authentication"])


class TokenResponse(BaseModel):
    """JWT plus the account it was issued for."""
    token: str = Field(..., description="JWT access token")
    user_id: UUID
    name: str
    email: str
    role: UserRole

    @classmethod
    def issued(cls, user: User, token: str) -> "TokenResponse":
        return cls(token=token, user_id=user.id, name=user.name, email=user.email, role=user.role)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterData,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Register a new account.

    Raises:
        400: Admin role requested
        409: Email already registered
    """
    user, token = auth_service.register(request)
    return TokenResponse.issued(user, token)


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginData,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    user, token = auth_service.login(request)
    return TokenResponse.issued(user, token)
