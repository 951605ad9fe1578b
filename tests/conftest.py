from __future__ import annotations

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.shipments.constants import PartnerAvailability, VehicleType
from modules.shipments.dtos import CreateShipmentDTO
from modules.shipments.models import DeliveryPartner
from modules.shipments.queries import ShipmentQueryService
from modules.shipments.repositories.django_repository import (
    DeliveryPartnerDjangoRepository,
    ShipmentDjangoRepository,
    TrackingEventDjangoLog,
)
from modules.shipments.repositories.memory_repository import (
    DeliveryPartnerMemoryRepository,
    InMemoryLogisticsStore,
    ShipmentMemoryRepository,
    TrackingEventMemoryLog,
)
from modules.shipments.services import ShipmentLifecycleService

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def auth_client():
    """APIClient with a force-authenticated Django user."""
    client = APIClient()
    user = User.objects.create_user(username="seller.ana", password="testpass123")
    client.force_authenticate(user=user)
    return client


# ---------------------------------------------------------------------------
# Shipments: builders
# ---------------------------------------------------------------------------


def _build_dto(order_id: str = "ORD-5503", **overrides) -> CreateShipmentDTO:
    data = {
        "order_id": order_id,
        "origin": "Seller Warehouse, Austin",
        "destination": "221B Baker Street, London",
        "customer_name": "Sarah Chen",
        "seller_name": "Acme Outdoors",
        "courier": "FastShip",
    }
    data.update(overrides)
    return CreateShipmentDTO(**data)


def _build_partner(**overrides) -> DeliveryPartner:
    data = {
        "name": "Marcus Lee",
        "provider": "FastShip",
        "rating": Decimal("4.8"),
        "active_orders": 3,
        "availability": PartnerAvailability.ONLINE,
        "vehicle_type": VehicleType.VAN,
    }
    data.update(overrides)
    return DeliveryPartner(**data)


# ---------------------------------------------------------------------------
# Shipments: in-memory wiring
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store() -> InMemoryLogisticsStore:
    return InMemoryLogisticsStore()


@pytest.fixture()
def memory_repositories(memory_store):
    return (
        ShipmentMemoryRepository(memory_store),
        TrackingEventMemoryLog(memory_store),
        DeliveryPartnerMemoryRepository(memory_store),
    )


@pytest.fixture()
def memory_service(memory_repositories) -> ShipmentLifecycleService:
    shipments, events, partners = memory_repositories
    return ShipmentLifecycleService(
        shipment_repository=shipments,
        event_log=events,
        partner_repository=partners,
    )


@pytest.fixture()
def memory_queries(memory_repositories) -> ShipmentQueryService:
    shipments, _, partners = memory_repositories
    return ShipmentQueryService(
        shipment_repository=shipments, partner_repository=partners
    )


# ---------------------------------------------------------------------------
# Shipments: Django wiring
# ---------------------------------------------------------------------------


@pytest.fixture()
def django_service() -> ShipmentLifecycleService:
    return ShipmentLifecycleService(
        shipment_repository=ShipmentDjangoRepository(),
        event_log=TrackingEventDjangoLog(),
        partner_repository=DeliveryPartnerDjangoRepository(),
    )


@pytest.fixture()
def partner() -> DeliveryPartner:
    saved = _build_partner()
    saved.save()
    return saved


@pytest.fixture()
def shipment_dto():
    """Builder for ``CreateShipmentDTO`` with realistic defaults."""
    return _build_dto


@pytest.fixture()
def partner_factory():
    """Builder for unsaved ``DeliveryPartner`` instances."""
    return _build_partner
