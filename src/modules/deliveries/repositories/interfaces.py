"""Delivery repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.deliveries.models import Delivery


class IDeliveryRepository(IRepository["Delivery"]):

    @abstractmethod
    def get_by_id(self, id: UUID | str) -> Optional[Delivery]:
        """Retrieve one delivery."""

    @abstractmethod
    def get_by_order(self, order_id: UUID | str) -> Optional[Delivery]:
        """The delivery attached to an order, if any."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Delivery:
        """Create the delivery (inside the assignment transaction)."""

    @abstractmethod
    def mark_delivered(self, order_id: UUID | str) -> bool:
        """Close the order's delivery; ``False`` when it has none."""

    @abstractmethod
    def update_deposit_id(self, order_id: UUID | str, deposit_id: str) -> bool:
        """Follow the order's deposit id after a payment retry."""
