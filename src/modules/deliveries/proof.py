"""Delivery proof capture.

A photo of the handed-over parcel and the buyer's signature are stored
in object storage (Django ``default_storage``) before the order is
closed. The order is only written once both artifacts are stored, so a
failed upload leaves it exactly as it was, and the artifacts of a
capture that did not close the order are deleted again.
"""

from __future__ import annotations

from typing import IO, TYPE_CHECKING, List, Optional, Tuple, Union
from uuid import uuid4

import structlog
from django.conf import settings
from django.core.files.base import ContentFile, File
from django.core.files.storage import Storage, default_storage
from django.db import transaction
from django.utils import timezone

from modules.deliveries.dtos import ProofResult
from modules.deliveries.exceptions import ProofUploadFailed
from modules.orders.constants import PROOF_ELIGIBLE_STATES, OrderStatus
from modules.orders.exceptions import InvalidTransition
from shared.domain.errors import FulfillmentError

if TYPE_CHECKING:
    from modules.deliveries.repositories.interfaces import IDeliveryRepository
    from modules.orders.dtos import OrderSnapshot
    from modules.orders.services import OrderTransitionService

logger = structlog.get_logger(__name__)

Artifact = Union[bytes, IO[bytes], File]


class DeliveryProofService:
    def __init__(
        self,
        order_service: OrderTransitionService,
        delivery_repository: IDeliveryRepository,
        storage: Optional[Storage] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._orders = order_service
        self._deliveries = delivery_repository
        self._storage = storage or default_storage
        self._max_attempts = max_attempts or settings.FULFILLMENT["PROOF_UPLOAD_MAX_ATTEMPTS"]

    def capture(
        self,
        order: OrderSnapshot,
        image: Artifact,
        signature: Artifact,
        *,
        actor: str = "driver",
    ) -> ProofResult:
        """Store both artifacts, then close the order as delivered.

        Raises:
            InvalidTransition: the order is not out for delivery.
            ProofUploadFailed: an artifact could not be stored.
            ConcurrentModification: the order changed during the upload.
        """
        if order.status not in PROOF_ELIGIBLE_STATES:
            raise InvalidTransition(str(order.status), OrderStatus.DELIVERED)

        image_name, image_url = self._upload(order, "image", image, "jpg")
        try:
            signature_name, signature_url = self._upload(order, "signature", signature, "png")
        except ProofUploadFailed:
            self._discard(order, [image_name])
            raise

        try:
            with transaction.atomic():
                updated = self._orders.transition(
                    order,
                    OrderStatus.DELIVERED,
                    fields={
                        "proof_image_url": image_url,
                        "proof_signature_url": signature_url,
                        "delivered_at": timezone.now(),
                    },
                    actor=actor,
                    notes="Proof of delivery captured",
                )
                self._deliveries.mark_delivered(order.id)
        except FulfillmentError:
            self._discard(order, [image_name, signature_name])
            raise

        logger.info("delivery.proof_captured", order_id=str(order.id))
        return ProofResult(order=updated, image_url=image_url, signature_url=signature_url)

    def _upload(
        self, order: OrderSnapshot, kind: str, content: Artifact, extension: str
    ) -> Tuple[str, str]:
        """Store one artifact; returns its stored name and public URL."""
        name = f"proofs/{order.id}/{kind}-{uuid4().hex}.{extension}"
        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                saved = self._storage.save(name, _as_file(content))
                return saved, self._storage.url(saved)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "delivery.proof_upload_failed",
                    order_id=str(order.id),
                    kind=kind,
                    attempt=attempt,
                    error=str(exc),
                )
        raise ProofUploadFailed(
            f"Could not store the {kind} for order {order.id}.", kind=kind
        ) from last_error

    def _discard(self, order: OrderSnapshot, names: List[str]) -> None:
        """Remove artifacts of a capture that did not close the order."""
        for name in names:
            try:
                self._storage.delete(name)
            except Exception as exc:
                logger.error(
                    "delivery.proof_cleanup_failed",
                    order_id=str(order.id),
                    name=name,
                    error=str(exc),
                )
            else:
                logger.info("delivery.proof_discarded", order_id=str(order.id), name=name)


def _as_file(content: Artifact) -> File:
    if isinstance(content, bytes):
        return ContentFile(content)
    if hasattr(content, "seek"):
        content.seek(0)
    return content if isinstance(content, File) else File(content)
