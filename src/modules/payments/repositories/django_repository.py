"""Django ORM implementation of the payment attempt repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F, Q
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.payments.constants import AttemptStatus, ConfirmationStatus
from modules.payments.models import ManualConfirmation, PaymentAttempt
from modules.payments.repositories.interfaces import IPaymentAttemptRepository
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "payments"


class PaymentAttemptDjangoRepository(IPaymentAttemptRepository):
    """Concrete attempt repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: UUID | str) -> Optional[PaymentAttempt]:
        try:
            return PaymentAttempt.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_deposit_id(self, deposit_id: str) -> Optional[PaymentAttempt]:
        return PaymentAttempt.objects.filter(deposit_id=deposit_id).first()

    def open_sms_listeners(
        self, now: datetime, deposit_id: Optional[str] = None
    ) -> List[PaymentAttempt]:
        queryset = PaymentAttempt.objects.filter(
            status=AttemptStatus.PENDING,
            initiated=True,
            sms_listener_enabled=True,
            sms_listener_expires_at__gt=now,
        )
        if deposit_id:
            queryset = queryset.filter(deposit_id=deposit_id)
        return list(queryset.order_by("created_at"))

    def open_for_order(self, order_id: UUID | str) -> List[PaymentAttempt]:
        return list(
            PaymentAttempt.objects.filter(order_id=order_id, status=AttemptStatus.PENDING)
        )

    def latest_for_order(self, order_id: UUID | str) -> Optional[PaymentAttempt]:
        return PaymentAttempt.objects.filter(order_id=order_id).order_by("-created_at").first()

    def transaction_id_used(self, transaction_id: str) -> bool:
        return (
            PaymentAttempt.objects.filter(gateway_transaction_id=transaction_id)
            .exclude(status=AttemptStatus.PENDING)
            .exists()
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> PaymentAttempt:
        attempt = PaymentAttempt.objects.create(**data)
        logger.info(
            "payment.attempt_created",
            deposit_id=attempt.deposit_id,
            purpose=attempt.purpose,
            amount=attempt.amount,
            currency=attempt.currency,
        )
        return attempt

    def mark_initiated(self, deposit_id: str, started_at: datetime) -> bool:
        return self._update(
            Q(deposit_id=deposit_id, status=AttemptStatus.PENDING, initiated=False),
            initiated=True,
            started_at=started_at,
        )

    def resolve(
        self,
        deposit_id: str,
        status: str,
        from_statuses: Sequence[str],
        fields: Dict[str, Any],
        include_review: bool = False,
    ) -> bool:
        condition = Q(status__in=list(from_statuses))
        if include_review:
            condition |= Q(status=AttemptStatus.FAILURE, requires_review=True)
        return self._update(
            Q(deposit_id=deposit_id) & condition,
            status=status,
            resolved_at=timezone.now(),
            **fields,
        )

    def flag_for_review(self, deposit_id: str, reason: str) -> bool:
        return self._update(Q(deposit_id=deposit_id), requires_review=True, failure_reason=reason)

    def swap_poll_handle(
        self, deposit_id: str, expected: Optional[str], new: Optional[str]
    ) -> bool:
        return self._update(
            Q(deposit_id=deposit_id, status=AttemptStatus.PENDING, poll_handle_id=expected),
            poll_handle_id=new,
        )

    def increment_poll_count(self, deposit_id: str) -> int:
        PaymentAttempt.objects.filter(deposit_id=deposit_id).update(
            poll_count=F("poll_count") + 1, updated_at=timezone.now()
        )
        return (
            PaymentAttempt.objects.filter(deposit_id=deposit_id)
            .values_list("poll_count", flat=True)
            .get()
        )

    def enable_sms_listener(self, deposit_id: str, expires_at: datetime, handle_id: str) -> bool:
        return self._update(
            Q(deposit_id=deposit_id, status=AttemptStatus.PENDING),
            sms_listener_enabled=True,
            sms_listener_expires_at=expires_at,
            sms_expiry_handle_id=handle_id,
        )

    def disable_sms_listener(self, deposit_id: str, handle_id: Optional[str] = None) -> bool:
        condition = Q(deposit_id=deposit_id, sms_listener_enabled=True)
        if handle_id is not None:
            condition &= Q(sms_expiry_handle_id=handle_id)
        return self._update(condition, sms_listener_enabled=False, sms_expiry_handle_id=None)

    def clear_channels(self, deposit_id: str) -> None:
        PaymentAttempt.objects.filter(deposit_id=deposit_id).update(
            poll_handle_id=None,
            sms_listener_enabled=False,
            sms_expiry_handle_id=None,
            updated_at=timezone.now(),
        )

    # ------------------------------------------------------------------
    # Manual confirmations
    # ------------------------------------------------------------------

    def add_confirmation(
        self, attempt: PaymentAttempt, raw_sms_text: str, transaction_id: str
    ) -> ManualConfirmation:
        return ManualConfirmation.objects.create(
            attempt=attempt, raw_sms_text=raw_sms_text, transaction_id=transaction_id
        )

    def get_confirmation(self, confirmation_id: UUID | str) -> Optional[ManualConfirmation]:
        try:
            return (
                ManualConfirmation.objects.select_related("attempt")
                .filter(id=confirmation_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def review_confirmation(
        self, confirmation_id: UUID | str, status: str, notes: str, reviewer: str
    ) -> bool:
        now = timezone.now()
        updated = ManualConfirmation.objects.filter(
            id=confirmation_id, status=ConfirmationStatus.PENDING_REVIEW
        ).update(
            status=status,
            reviewer_notes=notes,
            reviewed_by=reviewer,
            reviewed_at=now,
            updated_at=now,
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def record_events(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            OutboxEvent.record(event, topic=OUTBOX_TOPIC)

    def _update(self, condition: Q, **fields: Any) -> bool:
        fields.setdefault("updated_at", timezone.now())
        return PaymentAttempt.objects.filter(condition).update(**fields) == 1
