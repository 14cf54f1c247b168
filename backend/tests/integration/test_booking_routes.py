"""
Integration tests for customer booking routes.
"""
from datetime import timedelta
from uuid import UUID

import pytest

from servicehub.lib.dates import utcnow
from servicehub.lib.jwt import create_access_token
from servicehub.models.bookings import Booking, BookingStatus
from servicehub.models.users import UserRole


def booking_json(service, hours_ahead: float = 24, **overrides) -> dict:
    payload = {
        "service_id": str(service.id),
        "booking_date": (utcnow() + timedelta(hours=hours_ahead)).isoformat(),
        "time_slot": "10:00-12:00",
        "address": {
            "street": "221 Linking Road",
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400050",
        },
        "customer_notes": "Second floor",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create(client, service, customer, auth_headers):
    def _create(hours_ahead: float = 24, user=None, **overrides):
        return client.post(
            "/bookings",
            json=booking_json(service, hours_ahead, **overrides),
            headers=auth_headers(user or customer),
        )
    return _create


def verify(client, gateway, headers, payment, gateway_payment_id="pay_IH4NVgf4Dreq1l", signature=None):
    order_id = payment["gateway_order_id"]
    return client.post(
        "/bookings/verify-payment",
        json={
            "payment_id": payment["id"],
            "razorpay_order_id": order_id,
            "razorpay_payment_id": gateway_payment_id,
            "razorpay_signature": signature or gateway.sign(order_id, gateway_payment_id),
        },
        headers=headers,
    )


# ===== Create =====

@pytest.mark.integration
def test_create_booking(create, gateway):
    response = create()

    assert response.status_code == 201
    data = response.json()
    booking = data["booking"]
    assert booking["status"] == "pending"
    assert booking["payment_status"] == "pending"
    assert booking["service_fee"] == 500.0
    assert booking["platform_fee"] == 50.0
    assert booking["total_amount"] == 550.0
    assert booking["address"]["pincode"] == "400050"
    assert booking["service"]["name"] == "Deep Cleaning"
    assert booking["provider"]["name"] == "Ravi Provider"
    assert data["payment"]["status"] == "created"
    assert data["payment"]["amount"] == 550.0
    assert data["gateway_order"]["amount"] == 55000
    assert data["gateway_order"]["id"] == gateway.orders[0]["id"]


@pytest.mark.integration
def test_create_booking_requires_authentication(client, service):
    response = client.post("/bookings", json=booking_json(service))

    assert response.status_code == 401
    assert response.json()["error"] == "Authentication token is required"


@pytest.mark.integration
def test_create_booking_requires_customer_role(create, provider):
    response = create(user=provider)

    assert response.status_code == 403


@pytest.mark.integration
def test_create_booking_invalid_pincode(create):
    response = create(address={"street": "x", "city": "Mumbai", "state": "MH", "pincode": "40005"})

    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


@pytest.mark.integration
def test_create_booking_in_the_past(create):
    response = create(hours_ahead=-2)

    assert response.status_code == 400


@pytest.mark.integration
def test_create_booking_unknown_service(create):
    response = create(service_id="00000000-0000-4000-8000-000000000000")

    assert response.status_code == 404
    assert response.json()["error"] == "Service not found or not available"


@pytest.mark.integration
def test_gateway_failure_then_retry(client, create, gateway, customer, auth_headers, db_session):
    gateway.fail = True
    response = create()

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Failed to create payment order"
    booking_id = body["details"]["booking_id"]
    assert db_session.get(Booking, UUID(booking_id)) is not None

    gateway.fail = False
    retry = client.post(f"/bookings/{booking_id}/payment", headers=auth_headers(customer))

    assert retry.status_code == 200
    assert retry.json()["booking"]["id"] == booking_id
    assert retry.json()["payment"]["status"] == "created"


# ===== Payment callbacks =====

@pytest.mark.integration
def test_verify_payment_confirms_booking(client, create, gateway, customer, auth_headers, service, provider, db_session):
    created = create().json()
    headers = auth_headers(customer)

    response = verify(client, gateway, headers, created["payment"])

    assert response.status_code == 200
    assert response.json()["status"] == "captured"

    booking = client.get(f"/bookings/{created['booking']['id']}", headers=headers).json()
    assert booking["status"] == "confirmed"
    assert booking["payment_status"] == "paid"

    db_session.refresh(service)
    db_session.refresh(provider)
    assert service.total_bookings == 1
    assert provider.total_bookings == 1
    assert float(provider.total_earnings) == 550.0


@pytest.mark.integration
def test_verify_payment_bad_signature(client, create, gateway, customer, auth_headers):
    created = create().json()

    response = verify(client, gateway, auth_headers(customer), created["payment"], signature="0" * 64)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid payment signature"


@pytest.mark.integration
def test_verify_payment_twice_conflicts(client, create, gateway, customer, auth_headers):
    created = create().json()
    headers = auth_headers(customer)

    assert verify(client, gateway, headers, created["payment"]).status_code == 200
    response = verify(client, gateway, headers, created["payment"])

    assert response.status_code == 409


@pytest.mark.integration
def test_verify_payment_of_other_customer(client, create, gateway, make_user, auth_headers):
    created = create().json()
    stranger = make_user(UserRole.CUSTOMER, "Stranger")

    response = verify(client, gateway, auth_headers(stranger), created["payment"])

    assert response.status_code == 404


@pytest.mark.integration
def test_payment_failure_cancels_booking(client, create, customer, auth_headers):
    created = create().json()
    headers = auth_headers(customer)

    response = client.post(
        "/bookings/payment-failure",
        json={"payment_id": created["payment"]["id"], "reason": "Card declined by issuer"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["failure_reason"] == "Card declined by issuer"

    booking = client.get(f"/bookings/{created['booking']['id']}", headers=headers).json()
    assert booking["status"] == "cancelled"
    assert booking["payment_status"] == "failed"
    assert booking["cancel_reason"] == "Payment failed"


# ===== Reads =====

@pytest.mark.integration
def test_list_bookings_with_filters(client, create, customer, auth_headers):
    create(hours_ahead=24)
    create(hours_ahead=48, time_slot="16:00-18:00")
    create(hours_ahead=72)

    response = client.get(
        "/bookings",
        params={"status": "pending", "sort_by": "booking_date", "sort_order": "asc", "limit": 2},
        headers=auth_headers(customer),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["pagination"] == {"current": 1, "total": 2, "count": 3, "limit": 2}
    assert [b["time_slot"] for b in data["bookings"]] == ["10:00-12:00", "16:00-18:00"]


@pytest.mark.integration
def test_list_bookings_search(client, create, customer, auth_headers):
    create(time_slot="16:00-18:00")
    create()

    data = client.get("/bookings", params={"search": "16:00"}, headers=auth_headers(customer)).json()

    assert data["pagination"]["count"] == 1


@pytest.mark.integration
def test_list_bookings_rejects_unknown_status(client, customer, auth_headers):
    response = client.get("/bookings", params={"status": "teleported"}, headers=auth_headers(customer))

    assert response.status_code == 422
    assert response.json()["error"] == "Invalid booking query"


@pytest.mark.integration
def test_list_bookings_rejects_inverted_range(client, customer, auth_headers):
    now = utcnow()
    response = client.get(
        "/bookings",
        params={"start_date": now.isoformat(), "end_date": (now - timedelta(days=1)).isoformat()},
        headers=auth_headers(customer),
    )

    assert response.status_code == 422


@pytest.mark.integration
def test_get_booking_visible_to_provider_not_stranger(client, create, provider, make_user, auth_headers):
    booking_id = create().json()["booking"]["id"]
    stranger = make_user(UserRole.CUSTOMER, "Stranger")

    assert client.get(f"/bookings/{booking_id}", headers=auth_headers(provider)).status_code == 200
    assert client.get(f"/bookings/{booking_id}", headers=auth_headers(stranger)).status_code == 404


# ===== Cancel =====

@pytest.mark.integration
def test_cancel_booking(client, create, customer, auth_headers):
    booking_id = create(hours_ahead=3).json()["booking"]["id"]

    response = client.put(
        f"/bookings/{booking_id}/cancel",
        json={"cancel_reason": "Rescheduling"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 200
    assert response.json()["status"] == BookingStatus.CANCELLED.value
    assert response.json()["cancel_reason"] == "Rescheduling"


@pytest.mark.integration
def test_cancel_inside_window(client, create, customer, auth_headers):
    booking_id = create(hours_ahead=1).json()["booking"]["id"]

    response = client.put(f"/bookings/{booking_id}/cancel", json={}, headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot cancel booking less than 2 hours before the scheduled time"


# ===== Authentication sources =====

@pytest.mark.integration
def test_token_from_cookie(client, customer):
    client.cookies.set("token", create_access_token(str(customer.id), "customer"))

    assert client.get("/bookings").status_code == 200


@pytest.mark.integration
def test_token_from_custom_header(client, customer):
    headers = {"X-Auth-Token": create_access_token(str(customer.id), "customer")}

    assert client.get("/bookings", headers=headers).status_code == 200


@pytest.mark.integration
def test_expired_token_rejected(client, customer):
    token = create_access_token(str(customer.id), "customer", expires_delta=timedelta(seconds=-1))

    response = client.get("/bookings", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["error"] == "Token has expired"


@pytest.mark.integration
def test_deactivated_account_rejected(client, make_user, auth_headers):
    inactive = make_user(UserRole.CUSTOMER, "Inactive Customer", active=False)

    response = client.get("/bookings", headers=auth_headers(inactive))

    assert response.status_code == 401
    assert response.json()["error"] == "Account is deactivated"
