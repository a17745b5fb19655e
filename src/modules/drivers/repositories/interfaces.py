"""Driver repository interface.

Read-only: the driver's own app writes coordinates and availability.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository
from modules.drivers.dtos import DriverSnapshot


class IDriverRepository(IRepository[DriverSnapshot]):

    @abstractmethod
    def get_by_id(self, id: UUID | str) -> Optional[DriverSnapshot]:
        """Retrieve one driver."""

    @abstractmethod
    def list_available(self) -> List[DriverSnapshot]:
        """All drivers currently flagged available."""

    @abstractmethod
    def get_for_update(self, id: UUID | str) -> Optional[DriverSnapshot]:
        """Retrieve one driver with a row lock (inside a transaction)."""
