"""
Integration tests for Services API.
"""
from decimal import Decimal

import pytest

from servicehub.models.services import Service


@pytest.fixture
def sample_services(db_session, provider):
    """Three active services and one retired one."""
    services = [
        Service(
            provider_id=provider.id,
            name="Home Deep Cleaning",
            category="cleaning",
            description="Complete deep cleaning of your home",
            price=Decimal("2500.00"),
            duration_minutes=180,
        ),
        Service(
            provider_id=provider.id,
            name="AC Repair",
            category="electrical",
            description="Air conditioner repair and maintenance",
            price=Decimal("1500.00"),
            duration_minutes=90,
        ),
        Service(
            provider_id=provider.id,
            name="Bathroom Cleaning",
            category="cleaning",
            price=Decimal("800.00"),
            duration_minutes=60,
        ),
        Service(
            provider_id=provider.id,
            name="Inactive Service",
            category="other",
            price=Decimal("500.00"),
            duration_minutes=30,
            is_active=False,
        ),
    ]
    db_session.add_all(services)
    db_session.commit()
    return services


@pytest.mark.integration
def test_list_active_services(client, sample_services):
    response = client.get("/services")

    assert response.status_code == 200
    names = [s["name"] for s in response.json()]
    # Ordered by category, then name
    assert names == ["Bathroom Cleaning", "Home Deep Cleaning", "AC Repair"]


@pytest.mark.integration
def test_filter_services_by_category(client, sample_services):
    data = client.get("/services", params={"category": "electrical"}).json()

    assert len(data) == 1
    assert data[0]["name"] == "AC Repair"


@pytest.mark.integration
def test_list_services_empty(client):
    response = client.get("/services")

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.integration
def test_service_response_structure(client, sample_services, provider):
    service = client.get("/services", params={"category": "electrical"}).json()[0]

    assert service["provider_id"] == str(provider.id)
    assert service["price"] == 1500.0
    assert service["duration_minutes"] == 90
    assert service["total_bookings"] == 0
    assert service["description"] == "Air conditioner repair and maintenance"
