"""Order repository interface.

Extends ``IRepository[OrderSnapshot]`` with the conditioned write every
status change goes through, the status history audit trail, and the
outbox hand-off for the events the apps consume.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository
from modules.orders.dtos import OrderSnapshot

if TYPE_CHECKING:
    from shared.domain.events import DomainEvent


class IOrderRepository(IRepository[OrderSnapshot]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def get_by_id(self, id: UUID | str) -> Optional[OrderSnapshot]:
        """Retrieve an order snapshot with its items."""

    @abstractmethod
    def update_if_current(
        self,
        order_id: UUID,
        expected_version: int,
        expected_status: str,
        fields: Dict[str, Any],
    ) -> bool:
        """Write *fields* only if version and status still match.

        Bumps the version on success. Returns ``False`` when another
        writer got there first; nothing is written in that case.
        """

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        old_status: Optional[str],
        new_status: str,
        actor: str = "system",
        notes: str = "",
    ) -> None:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def record_events(self, events: Iterable[DomainEvent]) -> None:
        """Persist events in the outbox within the current transaction."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderSnapshot]:
        """List orders with optional filters."""
