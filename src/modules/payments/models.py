"""Payment attempts and manual confirmation claims.

A ``PaymentAttempt`` is one mobile-money deposit identified by its
``deposit_id``. Three channels race to resolve it (gateway polling,
inbound SMS, staff-approved manual claim); the resolution is a single
conditioned update on ``status``, so exactly one of them wins.

``poll_handle_id`` and ``sms_expiry_handle_id`` hold the currently
scheduled timer of each channel. A timer tick whose handle no longer
matches is stale and does nothing.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from modules.core.models import BaseModel
from modules.payments.constants import (
    AttemptStatus,
    ConfirmationStatus,
    PaymentProgress,
    PaymentPurpose,
    PaymentWindow,
    ResolutionChannel,
)


class PaymentAttempt(BaseModel):
    deposit_id: models.CharField = models.CharField(max_length=64, unique=True)
    purpose: models.CharField = models.CharField(
        max_length=32, choices=PaymentPurpose.choices
    )
    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_attempts",
        null=True,
        blank=True,
    )
    seller: models.ForeignKey = models.ForeignKey(
        "sellers.Seller",
        on_delete=models.PROTECT,
        related_name="payment_attempts",
        null=True,
        blank=True,
    )
    amount: models.PositiveIntegerField = models.PositiveIntegerField()
    currency: models.CharField = models.CharField(max_length=3, default="CDF")
    payer_phone: models.CharField = models.CharField(max_length=32)
    recipient_phone: models.CharField = models.CharField(max_length=32, blank=True, default="")
    window: models.CharField = models.CharField(
        max_length=32, choices=PaymentWindow.choices, default=PaymentWindow.STANDARD
    )
    status: models.CharField = models.CharField(
        max_length=16, choices=AttemptStatus.choices, default=AttemptStatus.PENDING
    )
    resolved_by: models.CharField = models.CharField(  # noqa: DJ01
        max_length=16, choices=ResolutionChannel.choices, null=True, blank=True
    )
    failure_reason: models.CharField = models.CharField(max_length=255, blank=True, default="")
    requires_review: models.BooleanField = models.BooleanField(default=False)
    initiated: models.BooleanField = models.BooleanField(default=False)
    poll_count: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    poll_handle_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    sms_listener_enabled: models.BooleanField = models.BooleanField(default=False)
    sms_listener_expires_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    sms_expiry_handle_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    gateway_transaction_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    started_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    resolved_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "payment_attempts"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "sms_listener_enabled"], name="attempts_sms_open_idx"),
            models.Index(fields=["order", "status"], name="attempts_order_status_idx"),
            models.Index(fields=["gateway_transaction_id"], name="attempts_txn_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(order__isnull=False) | Q(seller__isnull=False),
                name="attempts_have_a_subject",
            ),
            models.CheckConstraint(
                condition=Q(resolved_by__isnull=True) | ~Q(status=AttemptStatus.PENDING),
                name="attempts_resolved_by_requires_terminal",
            ),
        ]

    @property
    def is_open(self) -> bool:
        return self.status == AttemptStatus.PENDING

    @property
    def progress(self) -> str:
        """Projection the apps render: initiating / pending / success / failed."""
        if self.status == AttemptStatus.PENDING:
            if self.initiated:
                return PaymentProgress.PENDING_CONFIRMATION
            return PaymentProgress.INITIATING
        if self.status == AttemptStatus.SUCCESS:
            return PaymentProgress.SUCCESS
        return PaymentProgress.FAILED

    @property
    def subject_id(self):
        """Aggregate the attempt's events are filed under (order, else seller)."""
        return self.order_id or self.seller_id

    def __str__(self) -> str:
        return f"{self.deposit_id} [{self.status}]"


class ManualConfirmation(BaseModel):
    """A pasted confirmation SMS waiting for a human to verify it."""

    attempt: models.ForeignKey = models.ForeignKey(
        "payments.PaymentAttempt",
        on_delete=models.PROTECT,
        related_name="manual_confirmations",
    )
    raw_sms_text: models.TextField = models.TextField()
    transaction_id: models.CharField = models.CharField(max_length=64)
    status: models.CharField = models.CharField(
        max_length=16,
        choices=ConfirmationStatus.choices,
        default=ConfirmationStatus.PENDING_REVIEW,
    )
    reviewer_notes: models.TextField = models.TextField(blank=True, default="")
    reviewed_by: models.CharField = models.CharField(max_length=150, blank=True, default="")
    reviewed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "manual_confirmations"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="manual_conf_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.transaction_id} [{self.status}]"
