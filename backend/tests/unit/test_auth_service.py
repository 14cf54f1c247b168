"""
Unit tests for AuthService: registration, login and password storage.
"""
import pytest
from pydantic import ValidationError

from servicehub.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    UnauthorizedException,
)
from servicehub.lib.jwt import verify_token
from servicehub.models.users import UserRole
from servicehub.services.auth_service import AuthService, LoginData, RegisterData


@pytest.fixture
def auth_service(db_session):
    return AuthService(db_session)


def registration(**overrides) -> RegisterData:
    data = {
        "name": "Priya Sharma",
        "email": "Priya@Example.com ",
        "password": "s3cure-pass",
        "phone": "9123456780",
    }
    data.update(overrides)
    return RegisterData(**data)


@pytest.mark.unit
def test_register_creates_customer_with_hashed_password(auth_service):
    user, token = auth_service.register(registration())

    assert user.email == "priya@example.com"
    assert user.role == UserRole.CUSTOMER
    assert user.password_hash and user.password_hash != "s3cure-pass"

    payload = verify_token(token)
    assert payload["sub"] == str(user.id)
    assert payload["role"] == "customer"


@pytest.mark.unit
def test_register_provider(auth_service):
    user, token = auth_service.register(registration(role=UserRole.PROVIDER))

    assert user.role == UserRole.PROVIDER
    assert verify_token(token)["role"] == "provider"


@pytest.mark.unit
def test_register_admin_rejected(auth_service):
    with pytest.raises(BadRequestException):
        auth_service.register(registration(role=UserRole.ADMIN))


@pytest.mark.unit
def test_register_duplicate_email_conflicts(auth_service):
    auth_service.register(registration())

    with pytest.raises(ConflictException):
        auth_service.register(registration(email="priya@example.com", name="Another Priya"))


@pytest.mark.unit
@pytest.mark.parametrize("email", ["not-an-email", "priya@localhost", "@example.com"])
def test_register_invalid_email(email):
    with pytest.raises(ValidationError):
        registration(email=email)


@pytest.mark.unit
def test_register_short_password():
    with pytest.raises(ValidationError):
        registration(password="short")


@pytest.mark.unit
def test_login_issues_token(auth_service):
    registered, _ = auth_service.register(registration())

    user, token = auth_service.login(LoginData(email="PRIYA@example.com", password="s3cure-pass"))

    assert user.id == registered.id
    assert verify_token(token)["sub"] == str(registered.id)


@pytest.mark.unit
@pytest.mark.parametrize("email,password", [
    ("priya@example.com", "wrong-pass"),
    ("nobody@example.com", "s3cure-pass"),
])
def test_login_bad_credentials(auth_service, email, password):
    auth_service.register(registration())

    with pytest.raises(UnauthorizedException) as exc_info:
        auth_service.login(LoginData(email=email, password=password))

    assert exc_info.value.message == "Invalid email or password"


@pytest.mark.unit
def test_login_account_without_password(auth_service, customer):
    with pytest.raises(UnauthorizedException):
        auth_service.login(LoginData(email=customer.email, password="anything"))


@pytest.mark.unit
def test_login_deactivated_account(auth_service, db_session):
    user, _ = auth_service.register(registration())
    user.is_active = False
    db_session.commit()

    with pytest.raises(UnauthorizedException) as exc_info:
        auth_service.login(LoginData(email="priya@example.com", password="s3cure-pass"))

    assert exc_info.value.message == "Account is deactivated"
