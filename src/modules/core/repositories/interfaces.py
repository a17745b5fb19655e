"""Generic repository interface (Dependency Inversion Principle).

Provides ``IRepository[T]``, the base abstract class that all
domain-specific repository interfaces extend. Service-layer code
depends on this abstraction, never on Django ORM directly.

Repositories return validated snapshots (frozen DTOs) rather than
model instances: the engine never reads an arbitrary field off a
record without the read boundary having checked it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar
from uuid import UUID

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    Type parameter ``T`` is the snapshot type managed by the repository
    (e.g. ``OrderSnapshot``, ``DriverSnapshot``).
    """

    @abstractmethod
    def get_by_id(self, id: UUID | str) -> Optional[T]:
        """Retrieve a snapshot by primary key, ``None`` when absent."""
