"""
Pytest fixtures for payment tests.

Every payment test runs against a fresh PaymentEngine wired to a
VirtualClockScheduler, swapped into the payments app config so views
and tasks (which call get_engine()) see the same instance. Advance the
scheduler to deliver mock provider webhooks.

Usage:
    def test_webhook_settles_intent(engine, scheduler, unpaid_order):
        intent = engine.checkout.create_intent(unpaid_order, "88.00").data
        engine.checkout.confirm_intent(intent)
        scheduler.advance(2)
"""

from decimal import Decimal

import pytest
from django.apps import apps
from rest_framework.test import APIClient

from orders.models import OrderPaymentStatus, OrderStatus
from orders.tests.factories import OrderFactory, StaffUserFactory, UserFactory
from payments.engine import PaymentEngine
from payments.providers import VirtualClockScheduler
from payments.state_machines import IntentStatus, ProviderName
from payments.tests.factories import PaymentFactory, PaymentIntentFactory


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def scheduler():
    """Virtual clock for mock provider webhooks."""
    return VirtualClockScheduler()


@pytest.fixture(autouse=True)
def engine(scheduler, monkeypatch):
    """Fresh engine per test, installed as the process engine."""
    engine = PaymentEngine.build(scheduler=scheduler)
    monkeypatch.setattr(apps.get_app_config("payments"), "engine", engine)
    return engine


@pytest.fixture
def mock_provider(engine):
    return engine.providers.get(ProviderName.MOCK)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def traveler(db):
    return UserFactory()


@pytest.fixture
def host(db):
    return UserFactory()


@pytest.fixture
def staff_user(db):
    return StaffUserFactory()


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def unpaid_order(db, traveler, host):
    """PENDING_PAYMENT order for 88.00 CNY."""
    return OrderFactory(traveler=traveler, host=host, total_amount=Decimal("88.00"))


@pytest.fixture
def paid_order(db, traveler, host, engine):
    """Order paid through the engine with a simulated success."""
    order = OrderFactory(traveler=traveler, host=host, total_amount=Decimal("88.00"))
    intent = engine.checkout.create_intent(order, amount="88.00").data
    engine.checkout.confirm_intent(intent, simulate="succeeded")
    order.refresh_from_db()
    assert order.payment_status == OrderPaymentStatus.PAID
    return order


@pytest.fixture
def drifted_payment(db, traveler, host):
    """
    Succeeded Payment whose order was never marked PAID.

    Simulates a crash between the payment insert and the order update.
    """
    order = OrderFactory(
        traveler=traveler,
        host=host,
        status=OrderStatus.PENDING_PAYMENT,
        payment_status=OrderPaymentStatus.UNPAID,
    )
    intent = PaymentIntentFactory(order=order, status=IntentStatus.SUCCEEDED)
    return PaymentFactory(order=order, intent=intent)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def traveler_client(api_client, traveler):
    api_client.force_authenticate(user=traveler)
    return api_client


@pytest.fixture
def host_client(host):
    client = APIClient()
    client.force_authenticate(user=host)
    return client
