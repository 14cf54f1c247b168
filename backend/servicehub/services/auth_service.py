"""Authentication service for email and password accounts.

Handles:
1. Register: create a customer or provider account and issue a JWT
2. Login: check the password and issue a JWT

Admin accounts are never self-registered.
"""
from typing import Optional

from passlib.context import CryptContext
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    UnauthorizedException,
)
from servicehub.lib.jwt import create_access_token
from servicehub.lib.logging import get_logger, log_with_context
from servicehub.models.users import User, UserRole

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

SELF_REGISTER_ROLES = (UserRole.CUSTOMER, UserRole.PROVIDER)


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return value


class RegisterData(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=20)
    role: UserRole = UserRole.CUSTOMER

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _normalize_email(value)


class LoginData(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()


class AuthService:
    """Password authentication over one database session."""

    def __init__(self, session: Session):
        self.session = session

    def register(self, data: RegisterData) -> tuple[User, str]:
        """
        Create an account and return it with an access token.

        Raises:
            BadRequestException: Role cannot self-register
            ConflictException: Email already registered
        """
        if data.role not in SELF_REGISTER_ROLES:
            raise BadRequestException("Only customer and provider accounts can be registered")

        existing = self.session.execute(select(User.id).where(User.email == data.email)).first()
        if existing is not None:
            raise ConflictException("Email is already registered")

        user = User(
            name=data.name.strip(),
            email=data.email,
            phone=data.phone,
            role=data.role,
            password_hash=pwd_context.hash(data.password),
        )
        self.session.add(user)
        self.session.commit()

        log_with_context(logger, "info", "User registered", user_id=user.id, role=user.role.value)
        return user, self._issue_token(user)

    def login(self, data: LoginData) -> tuple[User, str]:
        """
        Check credentials and return the user with an access token.

        Unknown email and wrong password give the same error.

        Raises:
            UnauthorizedException: Bad credentials or deactivated account
        """
        user = self.session.execute(select(User).where(User.email == data.email)).scalar_one_or_none()
        if user is None or not user.password_hash or not pwd_context.verify(data.password, user.password_hash):
            log_with_context(logger, "warning", "Login failed", email=data.email)
            raise UnauthorizedException("Invalid email or password")
        if not user.is_active:
            raise UnauthorizedException("Account is deactivated")

        return user, self._issue_token(user)

    def _issue_token(self, user: User) -> str:
        return create_access_token(str(user.id), user.role.value)
