"""Projection events emitted around order writes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent

PHASE_PROVISIONAL = "provisional"
PHASE_CONFIRMED = "confirmed"
PHASE_ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class OrderProjected(DomainEvent):
    """What the apps should display for an order.

    A ``provisional`` projection is emitted before a conditioned write,
    followed by ``confirmed`` (the write landed) or ``rolled_back``
    (it did not; ``status`` is the persisted one again).
    """

    phase: str = PHASE_PROVISIONAL
    operation: str = ""
    status: str = ""
    version: int = 0
    error_code: Optional[str] = None
