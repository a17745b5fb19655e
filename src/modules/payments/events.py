"""Domain events for payment reconciliation.

Filed in the outbox under the order id for courier-leg deposits and
under the seller id for subscriptions, so each app reads one feed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class PaymentProgressChanged(DomainEvent):
    deposit_id: str = ""
    progress: str = ""
    status: str = ""


@dataclass(frozen=True)
class PaymentResolved(DomainEvent):
    deposit_id: str = ""
    status: str = ""
    channel: Optional[str] = None
    requires_review: bool = False


@dataclass(frozen=True)
class PaymentErrorRaised(DomainEvent):
    """A structured error for the apps (``FulfillmentError.as_dict``)."""

    deposit_id: str = ""
    error: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ManualConfirmationSubmitted(DomainEvent):
    deposit_id: str = ""
    confirmation_id: str = ""
    outcome: str = ""


@dataclass(frozen=True)
class ManualConfirmationReviewed(DomainEvent):
    deposit_id: str = ""
    confirmation_id: str = ""
    status: str = ""


@dataclass(frozen=True)
class SmsListenerExpired(DomainEvent):
    deposit_id: str = ""
