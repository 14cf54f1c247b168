"""
API dependencies for FastAPI dependency injection.

Provides database sessions, the payment gateway, workflow services and
authentication.
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import ForbiddenException, UnauthorizedException
from servicehub.lib.db import get_db as get_db_session
from servicehub.lib.jwt import verify_token
from servicehub.lib.logging import get_logger
from servicehub.lib.payment_gateway import PaymentGateway, get_payment_gateway
from servicehub.models.users import User, UserRole
from servicehub.services.booking_service import BookingService
from servicehub.services.payment_service import PaymentService

logger = get_logger(__name__)

# Re-export get_db for convenience
get_db = get_db_session

# Bearer is optional: the token may also arrive as a cookie or X-Auth-Token
security = HTTPBearer(auto_error=False)


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Token from Authorization: Bearer, then the `token` cookie, then X-Auth-Token."""
    if credentials and credentials.credentials:
        return credentials.credentials
    if request.cookies.get("token"):
        return request.cookies["token"]
    return request.headers.get("X-Auth-Token")


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from JWT token.

    Raises:
        UnauthorizedException: Token missing, invalid or expired; user missing or deactivated
    """
    token = extract_token(request, credentials)
    if not token:
        raise UnauthorizedException("Authentication token is required")

    try:
        payload = verify_token(token)
    except ExpiredSignatureError:
        raise UnauthorizedException("Token has expired")
    except InvalidTokenError:
        raise UnauthorizedException("Invalid authentication token")

    try:
        user_id = UUID(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise UnauthorizedException("Invalid authentication token")

    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    if not user.is_active:
        raise UnauthorizedException("Account is deactivated")

    return user


def require_role(*roles: UserRole):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.post("", dependencies=[Depends(require_role(UserRole.CUSTOMER))])
    """
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                "Role check failed",
                extra={"user_id": str(current_user.id), "role": current_user.role.value},
            )
            raise ForbiddenException("You do not have permission to perform this action")
        return current_user

    return checker


def get_booking_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingService:
    return BookingService(db, gateway)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentService:
    return PaymentService(db, gateway)
