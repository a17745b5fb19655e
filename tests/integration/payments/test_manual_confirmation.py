"""Integration tests for the manual confirmation channel."""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.constants import (
    MANUAL_CONFIRMATION_PENDING,
    AttemptStatus,
    ConfirmationStatus,
    ResolutionChannel,
)
from modules.payments.exceptions import (
    AttemptAlreadyResolved,
    ConfirmationAlreadyReviewed,
    ManualConfirmationNotFound,
)
from modules.payments.models import ManualConfirmation, PaymentAttempt

pytestmark = pytest.mark.integration

PASTED = "PAWAPAY: Paiement de 1 500 FC recu. TID: mp240301abcd"


@pytest.fixture()
def deposit(reconciler, order_service, awaiting_order):
    return reconciler.start_courier_deposit(
        order_service.get_order(awaiting_order.id), "+243810000002"
    )


def _attempt(deposit_id):
    return PaymentAttempt.objects.get(deposit_id=deposit_id)


class TestSubmit:
    def test_submission_is_pending_not_resolved(self, reconciler, deposit):
        pending = reconciler.submit_manual_confirmation(
            deposit.deposit_id, PASTED, " mp240301abcd "
        )

        assert pending.outcome == MANUAL_CONFIRMATION_PENDING
        assert pending.status == ConfirmationStatus.PENDING_REVIEW
        confirmation = ManualConfirmation.objects.get(id=pending.confirmation_id)
        assert confirmation.transaction_id == "MP240301ABCD"
        assert _attempt(deposit.deposit_id).status == AttemptStatus.PENDING

    def test_paid_attempt_rejects_submissions(self, reconciler, deposit, make_sms):
        reconciler.handle_sms(make_sms(PASTED))

        with pytest.raises(AttemptAlreadyResolved):
            reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP240301ABCD")


class TestReview:
    def test_approval_resolves_through_manual_channel(
        self, reconciler, deposit, awaiting_order, scheduler
    ):
        pending = reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP1234")

        confirmation = reconciler.review_manual_confirmation(
            pending.confirmation_id, approve=True, notes="ok", reviewer="ops"
        )

        assert confirmation.status == ConfirmationStatus.APPROVED
        assert confirmation.reviewed_by == "ops"
        attempt = _attempt(deposit.deposit_id)
        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.resolved_by == ResolutionChannel.MANUAL
        assert attempt.gateway_transaction_id == "MP1234"
        assert scheduler.scheduled == {}
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_approval_after_timeout(self, reconciler, deposit, awaiting_order, scheduler):
        for _ in range(20):
            scheduler.fire(reconciler)
        assert _attempt(deposit.deposit_id).status == AttemptStatus.TIMEOUT
        pending = reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP1234")

        reconciler.review_manual_confirmation(pending.confirmation_id, approve=True)

        assert _attempt(deposit.deposit_id).status == AttemptStatus.SUCCESS
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_rejection_leaves_attempt_open(self, reconciler, deposit):
        pending = reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP1234")

        confirmation = reconciler.review_manual_confirmation(
            pending.confirmation_id, approve=False, notes="transaction inconnue"
        )

        assert confirmation.status == ConfirmationStatus.REJECTED
        assert confirmation.reviewer_notes == "transaction inconnue"
        assert _attempt(deposit.deposit_id).status == AttemptStatus.PENDING

    def test_second_review_is_rejected(self, reconciler, deposit):
        pending = reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP1234")
        reconciler.review_manual_confirmation(pending.confirmation_id, approve=False)

        with pytest.raises(ConfirmationAlreadyReviewed):
            reconciler.review_manual_confirmation(pending.confirmation_id, approve=True)

        assert _attempt(deposit.deposit_id).status == AttemptStatus.PENDING

    def test_approval_of_a_cancelled_attempt_fails(self, reconciler, deposit, awaiting_order):
        pending = reconciler.submit_manual_confirmation(deposit.deposit_id, PASTED, "MP1234")
        reconciler.cancel_for_order(awaiting_order.id)

        with pytest.raises(AttemptAlreadyResolved):
            reconciler.review_manual_confirmation(pending.confirmation_id, approve=True)

        confirmation = ManualConfirmation.objects.get(id=pending.confirmation_id)
        assert confirmation.status == ConfirmationStatus.PENDING_REVIEW

    def test_unknown_confirmation(self, reconciler):
        with pytest.raises(ManualConfirmationNotFound):
            reconciler.review_manual_confirmation("not-a-uuid", approve=True)
