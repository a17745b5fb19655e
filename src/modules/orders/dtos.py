"""Order snapshots.

Framework-agnostic, immutable (``frozen=True``) views of an order read
at the repository boundary. Unknown fields are rejected and required
fields have no defaults, so a malformed record fails here rather than
deep inside the engine.

- ``OrderItemSnapshot``: a single line item.
- ``OrderSnapshot``: the order as the engine sees it, including the
  ``version`` every conditioned write is checked against.
- ``StatusHistoryDTO``: output for a status history record.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from modules.drivers.dtos import Coordinates
from modules.orders.constants import TERMINAL_STATES, DeliveryMethod, OrderStatus

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class OrderItemSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)


class OrderSnapshot(BaseModel):
    """Immutable read of an order record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    order_number: str
    seller_id: UUID
    status: OrderStatus
    delivery_method: DeliveryMethod
    version: int = Field(ge=1)
    total_amount: int = Field(ge=0)
    currency: str
    customer_name: str
    customer_phone: str
    delivery_address: str
    delivery_location: Optional[Coordinates]
    seller_location: Optional[Coordinates]
    driver_id: Optional[UUID]
    deposit_id: Optional[str]
    courier_fee_paid: bool
    proof_image_url: Optional[str]
    proof_signature_url: Optional[str]
    delivered_at: Optional[datetime]
    items: List[OrderItemSnapshot] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_invariants(self) -> OrderSnapshot:
        platform = self.delivery_method == DeliveryMethod.PLATFORM_DELIVERY
        if self.driver_id is not None and not platform:
            raise ValueError("A driver requires a platform delivery.")
        if self.deposit_id is not None and not platform:
            raise ValueError("A deposit id requires a platform delivery.")
        if self.proof_image_url is not None and self.status != OrderStatus.DELIVERED:
            raise ValueError("A proof image requires a delivered order.")
        return self

    @classmethod
    def from_entity(cls, order: Order) -> OrderSnapshot:
        """Build a snapshot from an ``Order`` (items should be prefetched)."""
        return cls(
            id=order.id,
            order_number=order.order_number,
            seller_id=order.seller_id,
            status=order.status,
            delivery_method=order.delivery_method,
            version=order.version,
            total_amount=order.total_amount,
            currency=order.currency,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            delivery_address=order.delivery_address,
            delivery_location=_coordinates(
                order.delivery_latitude, order.delivery_longitude
            ),
            seller_location=_coordinates(
                order.seller_live_latitude, order.seller_live_longitude
            ),
            driver_id=order.driver_id,
            deposit_id=order.deposit_id,
            courier_fee_paid=order.courier_fee_paid,
            proof_image_url=order.proof_image_url,
            proof_signature_url=order.proof_signature_url,
            delivered_at=order.delivered_at,
            items=[
                OrderItemSnapshot(
                    name=item.name, quantity=item.quantity, unit_price=item.unit_price
                )
                for item in order.items.all()
            ],
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class StatusHistoryDTO(BaseModel):
    """Immutable DTO for order status history API responses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    old_status: Optional[str]
    new_status: str
    actor: str
    notes: str
    created_at: datetime

    @classmethod
    def from_entity(cls, history: OrderStatusHistory) -> StatusHistoryDTO:
        return cls(
            id=history.id,
            old_status=history.old_status,
            new_status=history.new_status,
            actor=history.actor,
            notes=history.notes,
            created_at=history.created_at,
        )


def _coordinates(
    latitude: Optional[float], longitude: Optional[float]
) -> Optional[Coordinates]:
    if latitude is None or longitude is None:
        return None
    return Coordinates(latitude=latitude, longitude=longitude)
