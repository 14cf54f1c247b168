"""
Integration tests for register and login routes.
"""
import pytest


REGISTRATION = {
    "name": "Priya Sharma",
    "email": "priya@example.com",
    "password": "s3cure-pass",
    "phone": "9123456780",
}


@pytest.mark.integration
def test_register_returns_token(client):
    response = client.post("/auth/register", json=REGISTRATION)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "priya@example.com"
    assert data["role"] == "customer"
    assert data["token"]
    assert "password" not in response.text


@pytest.mark.integration
def test_register_duplicate_email(client):
    client.post("/auth/register", json=REGISTRATION)

    response = client.post("/auth/register", json=REGISTRATION)

    assert response.status_code == 409


@pytest.mark.integration
def test_register_admin_not_allowed(client):
    response = client.post("/auth/register", json={**REGISTRATION, "role": "admin"})

    assert response.status_code == 400


@pytest.mark.integration
def test_register_validation_error(client):
    response = client.post("/auth/register", json={**REGISTRATION, "password": "123"})

    assert response.status_code == 422


@pytest.mark.integration
def test_login_token_authenticates_booking_routes(client, service, booking_data):
    client.post("/auth/register", json=REGISTRATION)

    login = client.post("/auth/login", json={"email": "priya@example.com", "password": "s3cure-pass"})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['token']}"}

    payload = booking_data(service).model_dump(mode="json")
    created = client.post("/bookings", json=payload, headers=headers)

    assert created.status_code == 201
    assert client.get("/bookings", headers=headers).json()["pagination"]["count"] == 1


@pytest.mark.integration
def test_login_wrong_password(client):
    client.post("/auth/register", json=REGISTRATION)

    response = client.post("/auth/login", json={"email": "priya@example.com", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"
