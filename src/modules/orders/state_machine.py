"""Pure order status transitions.

No I/O here: the functions validate a requested status against the
transition table and return a new snapshot. Persisting the result is
the job of ``OrderTransitionService``.
"""

from __future__ import annotations

from typing import Iterable

from modules.orders.constants import VALID_TRANSITIONS, OrderStatus
from modules.orders.dtos import OrderSnapshot
from modules.orders.exceptions import InvalidTransition


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def transition(order: OrderSnapshot, requested: str) -> OrderSnapshot:
    """Return *order* moved to *requested*, or raise ``InvalidTransition``."""
    if not can_transition(order.status, requested):
        raise InvalidTransition(str(order.status), str(requested))
    return order.model_copy(update={"status": OrderStatus(requested)})


def transition_path(order: OrderSnapshot, path: Iterable[str]) -> OrderSnapshot:
    """Validate every step of *path* in order.

    The first unreachable step raises; nothing is returned for a partial
    path, so callers write all the steps or none of them.
    """
    current = order
    steps = list(path)
    if not steps:
        raise ValueError("A transition path needs at least one status.")
    for step in steps:
        current = transition(current, step)
    return current
