"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised for every persisted status step (one per history row)."""

    old_status: Optional[str] = None
    new_status: str = ""
    version: int = 0
    actor: str = "system"


@dataclass(frozen=True)
class OrderCancelled(OrderStatusChanged):
    """Raised when an order reaches ``cancelled``."""


@dataclass(frozen=True)
class OrderDelivered(OrderStatusChanged):
    """Raised when an order reaches ``delivered``."""


@dataclass(frozen=True)
class SellerLocationUpdated(DomainEvent):
    latitude: float = 0.0
    longitude: float = 0.0
    version: int = 0


@dataclass(frozen=True)
class DepositIdRotated(DomainEvent):
    """A new courier-fee deposit id replaced a failed or expired one."""

    previous_deposit_id: Optional[str] = None
    deposit_id: str = ""
    version: int = 0
