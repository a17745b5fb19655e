from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from modules.drivers.dtos import Coordinates
from modules.drivers.models import Driver
from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderTransitionService
from modules.payments.constants import AttemptStatus, POLL_TASK, SMS_EXPIRY_TASK
from modules.payments.gateway import GatewayStatus, InitiateDepositResponse, PaymentGatewayClient
from modules.payments.reconciler import PaymentReconciler
from modules.payments.repositories import PaymentAttemptDjangoRepository
from modules.payments.scheduler import ITimerScheduler, set_scheduler
from modules.payments.sms import SmsMessage
from modules.sellers.models import Seller
from modules.sellers.services import SellerVerificationService

User = get_user_model()

# Gombe, Kinshasa
SELLER_POINT = Coordinates(latitude=-4.3217, longitude=15.3125)
# ~2.3 km south of the seller
NEAR_POINT = Coordinates(latitude=-4.342384, longitude=15.3125)
# ~11 km south of the seller
FAR_POINT = Coordinates(latitude=-4.4207, longitude=15.3125)


class ManualScheduler(ITimerScheduler):
    """Timers that only fire when the test says so."""

    def __init__(self) -> None:
        self.scheduled: Dict[str, Tuple[str, float, Dict[str, Any]]] = {}
        self.cancelled: List[str] = []

    def schedule(
        self,
        task_name: str,
        delay_s: float,
        kwargs: Dict[str, Any],
        handle_id: Optional[str] = None,
    ) -> str:
        handle_id = handle_id or str(uuid4())
        self.scheduled[handle_id] = (task_name, delay_s, {**kwargs, "handle_id": handle_id})
        return handle_id

    def cancel(self, handle_id: str) -> None:
        self.cancelled.append(handle_id)
        self.scheduled.pop(handle_id, None)

    def pending(self, task_name: str) -> List[Dict[str, Any]]:
        return [kw for name, _, kw in self.scheduled.values() if name == task_name]

    def fire(self, reconciler: PaymentReconciler, task_name: str = POLL_TASK):
        """Run the oldest pending timer of *task_name*."""
        kwargs = self.pending(task_name)[0]
        self.scheduled.pop(kwargs["handle_id"])
        if task_name == SMS_EXPIRY_TASK:
            return reconciler.expire_sms_listener(**kwargs)
        return reconciler.poll_tick(**kwargs)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def scheduler():
    manual = ManualScheduler()
    set_scheduler(manual)
    yield manual
    set_scheduler(None)


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
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
    """APIClient with a force-authenticated app user."""
    client = APIClient()
    user = User.objects.create_user(username="seller-app", password="testpass123")
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client():
    client = APIClient()
    user = User.objects.create_user(username="reviewer", password="testpass123", is_staff=True)
    client.force_authenticate(user=user)
    return client


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@pytest.fixture()
def seller():
    return Seller.objects.create(name="Boutique Matonge", phone="+243810000001")


@pytest.fixture()
def make_driver():
    def _make(point: Coordinates = NEAR_POINT, available: bool = True, **overrides):
        data = {
            "name": "Livreur",
            "phone": "+243820000001",
            "live_latitude": point.latitude,
            "live_longitude": point.longitude,
            "is_available": available,
        }
        data.update(overrides)
        return Driver.objects.create(**data)

    return _make


@pytest.fixture()
def driver(make_driver):
    return make_driver()


@pytest.fixture()
def make_order(seller):
    def _make(**overrides):
        data = {
            "seller": seller,
            "customer_name": "Client Test",
            "customer_phone": "+243990000001",
            "delivery_address": "12 avenue du Commerce, Kinshasa",
            "delivery_latitude": -4.3301,
            "delivery_longitude": 15.3001,
            "total_amount": 25000,
        }
        data.update(overrides)
        order = Order.objects.create(**data)
        OrderItem.objects.create(order=order, name="Pagne wax", quantity=1, unit_price=25000)
        return order

    return _make


@pytest.fixture()
def order(make_order):
    return make_order()


@pytest.fixture()
def awaiting_order(make_order, driver):
    """Platform delivery waiting for its courier fee (``app_delivering``)."""
    return make_order(
        status=OrderStatus.APP_DELIVERING,
        delivery_method=DeliveryMethod.PLATFORM_DELIVERY,
        driver=driver,
        deposit_id=str(uuid4()),
    )


@pytest.fixture()
def make_sms():
    def _make(body: str, age_s: int = 40) -> SmsMessage:
        return SmsMessage(
            originating_address="PAWAPAY",
            body=body,
            received_at=timezone.now() - timedelta(seconds=age_s),
        )

    return _make


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_service():
    return OrderTransitionService(order_repository=OrderDjangoRepository())


@pytest.fixture()
def gateway():
    """Gateway double: initiation succeeds, every check answers PENDING."""
    client = MagicMock(spec=PaymentGatewayClient)
    client.initiate_deposit.return_value = InitiateDepositResponse(success=True, message="ok")
    client.check_payment.return_value = _gateway_status(AttemptStatus.PENDING)
    return client


def _gateway_status(status: str, amount=None, currency=None, transaction_id=None) -> GatewayStatus:
    return GatewayStatus(
        status=status,
        raw_status=status,
        amount=amount,
        currency=currency,
        transaction_id=transaction_id,
    )


@pytest.fixture()
def gateway_status():
    return _gateway_status


@pytest.fixture()
def seller_point():
    return SELLER_POINT


@pytest.fixture()
def reconciler(gateway, scheduler, order_service):
    return PaymentReconciler(
        gateway=gateway,
        attempt_repository=PaymentAttemptDjangoRepository(),
        order_service=order_service,
        seller_service=SellerVerificationService(),
        scheduler=scheduler,
    )
