"""Integration tests for proof-of-delivery capture."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from django.core.files.base import ContentFile
from django.core.files.storage import Storage

from modules.deliveries.constants import DeliveryStatus
from modules.deliveries.exceptions import ProofUploadFailed
from modules.deliveries.models import Delivery
from modules.deliveries.proof import DeliveryProofService
from modules.deliveries.repositories.django_repository import DeliveryDjangoRepository
from modules.deliveries.services import DeliveryAssignmentService
from modules.drivers.repositories import DriverDjangoRepository
from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.exceptions import ConcurrentModification, InvalidTransition
from modules.orders.models import Order

pytestmark = pytest.mark.integration


@pytest.fixture()
def storage():
    mock = MagicMock(spec=Storage)
    mock.url.side_effect = lambda name: f"https://cdn.test/{name}"
    return mock


@pytest.fixture()
def proof_service(order_service, storage):
    return DeliveryProofService(
        order_service=order_service,
        delivery_repository=DeliveryDjangoRepository(),
        storage=storage,
    )


@pytest.fixture()
def paid_order(order_service, make_order, driver, seller_point):
    """A platform delivery whose courier fee is settled (``payment_ok``)."""
    order = make_order(courier_fee_paid=True)
    assignment = DeliveryAssignmentService(
        order_service=order_service,
        driver_repository=DriverDjangoRepository(),
        delivery_repository=DeliveryDjangoRepository(),
    )
    return assignment.assign(order_service.get_order(order.id), driver.id, seller_point).order


class TestProofCapture:
    def test_transient_failures_are_retried(self, proof_service, storage, paid_order):
        storage.save.side_effect = [OSError("timeout"), OSError("timeout"), "a.jpg", "b.png"]

        result = proof_service.capture(paid_order, b"jpeg-bytes", b"png-bytes")

        assert storage.save.call_count == 4
        assert result.image_url == "https://cdn.test/a.jpg"
        assert result.signature_url == "https://cdn.test/b.png"
        assert result.order.status == OrderStatus.DELIVERED
        assert result.order.delivered_at is not None

        stored = Order.objects.get(id=paid_order.id)
        assert stored.proof_image_url == "https://cdn.test/a.jpg"
        assert stored.proof_signature_url == "https://cdn.test/b.png"
        assert Delivery.objects.get(order_id=paid_order.id).status == DeliveryStatus.DELIVERED

    def test_artifacts_are_stored_under_the_order(self, proof_service, storage, paid_order):
        storage.save.side_effect = lambda name, content: name

        proof_service.capture(paid_order, ContentFile(b"jpeg"), b"png")

        names = [call.args[0] for call in storage.save.call_args_list]
        assert names[0].startswith(f"proofs/{paid_order.id}/image-")
        assert names[0].endswith(".jpg")
        assert names[1].startswith(f"proofs/{paid_order.id}/signature-")
        assert names[1].endswith(".png")

    def test_permanent_failure_leaves_order_untouched(self, proof_service, storage, paid_order):
        storage.save.side_effect = OSError("bucket unreachable")

        with pytest.raises(ProofUploadFailed) as exc_info:
            proof_service.capture(paid_order, b"jpeg", b"png")

        assert exc_info.value.retryable
        assert storage.save.call_count == 3
        stored = Order.objects.get(id=paid_order.id)
        assert stored.status == OrderStatus.PAYMENT_OK
        assert stored.version == paid_order.version
        assert stored.proof_image_url is None
        assert Delivery.objects.get(order_id=paid_order.id).status == DeliveryStatus.PENDING
        storage.delete.assert_not_called()

    def test_stored_image_is_deleted_when_signature_fails(
        self, proof_service, storage, paid_order
    ):
        storage.save.side_effect = ["a.jpg", OSError("down"), OSError("down"), OSError("down")]

        with pytest.raises(ProofUploadFailed) as exc_info:
            proof_service.capture(paid_order, b"jpeg", b"png")

        assert exc_info.value.context == {"kind": "signature"}
        storage.delete.assert_called_once_with("a.jpg")
        assert Order.objects.get(id=paid_order.id).status == OrderStatus.PAYMENT_OK

    def test_artifacts_are_deleted_when_the_order_moved_on(
        self, proof_service, storage, order_service, paid_order
    ):
        storage.save.side_effect = ["a.jpg", "b.png"]
        order_service.transition(paid_order, OrderStatus.CANCELLED, actor="support")

        with pytest.raises(ConcurrentModification):
            proof_service.capture(paid_order, b"jpeg", b"png")

        deleted = [call.args[0] for call in storage.delete.call_args_list]
        assert deleted == ["a.jpg", "b.png"]
        stored = Order.objects.get(id=paid_order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.proof_image_url is None

    def test_self_delivery_can_be_closed(self, proof_service, storage, order_service, make_order):
        order = make_order(
            status=OrderStatus.SELLER_DELIVERING,
            delivery_method=DeliveryMethod.SELLER_DELIVERY,
        )
        storage.save.side_effect = ["a.jpg", "b.png"]

        result = proof_service.capture(order_service.get_order(order.id), b"jpeg", b"png")

        assert result.order.status == OrderStatus.DELIVERED

    def test_order_waiting_for_a_choice_is_not_eligible(
        self, proof_service, storage, order_service, order
    ):
        with pytest.raises(InvalidTransition):
            proof_service.capture(order_service.get_order(order.id), b"jpeg", b"png")

        storage.save.assert_not_called()
