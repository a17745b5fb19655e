"""Payment attempt repository interface.

Every state change on an attempt is a conditioned update that reports
whether it applied, so concurrent channels and stale timers can tell
that they lost without locking.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.payments.models import ManualConfirmation, PaymentAttempt
    from shared.domain.events import DomainEvent


class IPaymentAttemptRepository(IRepository["PaymentAttempt"]):

    @abstractmethod
    def get_by_id(self, id: UUID | str) -> Optional[PaymentAttempt]:
        """Retrieve one attempt by primary key."""

    @abstractmethod
    def get_by_deposit_id(self, deposit_id: str) -> Optional[PaymentAttempt]:
        """Retrieve one attempt by its gateway deposit id."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> PaymentAttempt:
        """Persist a new ``PENDING`` attempt."""

    @abstractmethod
    def mark_initiated(self, deposit_id: str, started_at: datetime) -> bool:
        """Record that the gateway accepted the deposit."""

    @abstractmethod
    def resolve(
        self,
        deposit_id: str,
        status: str,
        from_statuses: Sequence[str],
        fields: Dict[str, Any],
        include_review: bool = False,
    ) -> bool:
        """Move the attempt to *status* if it is in one of *from_statuses*.

        With ``include_review`` a ``FAILURE`` flagged for review also
        qualifies. Returns ``False`` if another writer resolved it first.
        """

    @abstractmethod
    def flag_for_review(self, deposit_id: str, reason: str) -> bool:
        """Mark a resolved attempt as needing a human look."""

    @abstractmethod
    def swap_poll_handle(
        self, deposit_id: str, expected: Optional[str], new: Optional[str]
    ) -> bool:
        """Replace the scheduled poll handle if it is still *expected*."""

    @abstractmethod
    def increment_poll_count(self, deposit_id: str) -> int:
        """Atomically count one poll; returns the new count."""

    @abstractmethod
    def enable_sms_listener(self, deposit_id: str, expires_at: datetime, handle_id: str) -> bool:
        """Open the SMS channel of a pending attempt."""

    @abstractmethod
    def disable_sms_listener(self, deposit_id: str, handle_id: Optional[str] = None) -> bool:
        """Close the SMS channel, only for *handle_id* when given."""

    @abstractmethod
    def clear_channels(self, deposit_id: str) -> None:
        """Forget every timer handle and close the SMS channel."""

    @abstractmethod
    def open_sms_listeners(
        self, now: datetime, deposit_id: Optional[str] = None
    ) -> List[PaymentAttempt]:
        """Pending attempts whose SMS channel is open at *now*."""

    @abstractmethod
    def open_for_order(self, order_id: UUID | str) -> List[PaymentAttempt]:
        """Pending attempts of an order."""

    @abstractmethod
    def latest_for_order(self, order_id: UUID | str) -> Optional[PaymentAttempt]:
        """Most recent attempt of an order, any status."""

    @abstractmethod
    def transaction_id_used(self, transaction_id: str) -> bool:
        """Whether a resolved attempt already carries this provider transaction id."""

    @abstractmethod
    def add_confirmation(
        self, attempt: PaymentAttempt, raw_sms_text: str, transaction_id: str
    ) -> ManualConfirmation:
        """Record a manual claim for review."""

    @abstractmethod
    def get_confirmation(self, confirmation_id: UUID | str) -> Optional[ManualConfirmation]:
        """Retrieve one manual claim."""

    @abstractmethod
    def review_confirmation(
        self, confirmation_id: UUID | str, status: str, notes: str, reviewer: str
    ) -> bool:
        """Close a claim still pending review."""

    @abstractmethod
    def record_events(self, events: Iterable[DomainEvent]) -> None:
        """Persist events in the outbox within the current transaction."""
