"""Integration tests for the three confirmation channels."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import ConcurrentModification, InvalidTransition
from modules.orders.models import Order
from modules.payments.constants import (
    POLL_TASK,
    SMS_EXPIRY_TASK,
    AttemptStatus,
    ChannelKind,
    PaymentProgress,
    PaymentWindow,
    ResolutionChannel,
)
from modules.payments.exceptions import (
    AttemptAlreadyResolved,
    DepositInitiationFailed,
    PaymentAttemptNotFound,
)
from modules.payments.gateway import GatewayError
from modules.payments.models import PaymentAttempt
from modules.payments.reconciler import TICK_ERROR, TICK_PENDING, TICK_RESOLVED, TICK_STALE
from modules.sellers.exceptions import SellerNotFound
from modules.sellers.models import Seller

pytestmark = pytest.mark.integration

PAYER = "+243810000002"
CONFIRMATION = "PAWAPAY: Paiement de 1 500 FC recu. TID: MP240301ABCD"


def _start(reconciler, order_service, order, **kwargs):
    return reconciler.start_courier_deposit(order_service.get_order(order.id), PAYER, **kwargs)


def _payment_events(event_type):
    return list(OutboxEvent.objects.filter(topic="payments", event_type=event_type))


class TestStart:
    def test_start_opens_poll_and_sms_channels(
        self, reconciler, order_service, awaiting_order, gateway, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)

        assert started.deposit_id == awaiting_order.deposit_id
        assert started.status == AttemptStatus.PENDING
        assert started.progress == PaymentProgress.PENDING_CONFIRMATION
        assert {h.kind for h in started.handles} == {ChannelKind.POLL, ChannelKind.SMS}
        assert all(h.subject_id == awaiting_order.id for h in started.handles)

        request = gateway.initiate_deposit.call_args.args[0]
        assert request.deposit_id == awaiting_order.deposit_id
        assert request.amount == 1500
        assert request.currency == "CDF"

        assert len(scheduler.pending(POLL_TASK)) == 1
        assert len(scheduler.pending(SMS_EXPIRY_TASK)) == 1
        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.initiated
        assert attempt.sms_listener_enabled

    def test_sms_channel_skipped_without_capability(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order, sms_capable=False)

        assert [h.kind for h in started.handles] == [ChannelKind.POLL]
        assert scheduler.pending(SMS_EXPIRY_TASK) == []

    def test_second_start_resumes_without_charging_twice(
        self, reconciler, order_service, awaiting_order, gateway
    ):
        first = _start(reconciler, order_service, awaiting_order)
        second = _start(reconciler, order_service, awaiting_order)

        assert second.resumed
        assert gateway.initiate_deposit.call_count == 1
        poll = [h.handle_id for h in first.handles if h.kind == ChannelKind.POLL]
        assert poll == [h.handle_id for h in second.handles if h.kind == ChannelKind.POLL]
        assert PaymentAttempt.objects.filter(deposit_id=first.deposit_id).count() == 1

    def test_order_must_wait_for_payment(self, reconciler, order_service, order):
        with pytest.raises(InvalidTransition):
            reconciler.start_courier_deposit(order_service.get_order(order.id), PAYER)

    def test_initiation_failure_resolves_as_failure(
        self, reconciler, order_service, awaiting_order, gateway, scheduler
    ):
        gateway.initiate_deposit.side_effect = DepositInitiationFailed("refused")

        with pytest.raises(DepositInitiationFailed):
            _start(reconciler, order_service, awaiting_order)

        attempt = PaymentAttempt.objects.get(deposit_id=awaiting_order.deposit_id)
        assert attempt.status == AttemptStatus.FAILURE
        assert attempt.progress == PaymentProgress.FAILED
        assert scheduler.scheduled == {}
        errors = _payment_events("PaymentErrorRaised")
        assert errors[0].payload["error"]["code"] == "DEPOSIT_INITIATION_FAILED"

    def test_resolved_attempt_cannot_be_restarted(
        self, reconciler, order_service, awaiting_order, gateway
    ):
        gateway.initiate_deposit.side_effect = DepositInitiationFailed("refused")
        with pytest.raises(DepositInitiationFailed):
            _start(reconciler, order_service, awaiting_order)

        with pytest.raises(AttemptAlreadyResolved):
            _start(reconciler, order_service, awaiting_order)

    def test_unknown_deposit(self, reconciler):
        with pytest.raises(PaymentAttemptNotFound):
            reconciler.get_attempt("missing")


class TestPollChannel:
    def test_timeout_after_max_polls(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)

        results = [scheduler.fire(reconciler) for _ in range(20)]

        assert results[:19] == [TICK_PENDING] * 19
        assert results[19] == TICK_RESOLVED
        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.TIMEOUT
        assert attempt.poll_count == 20
        assert not attempt.sms_listener_enabled
        assert scheduler.scheduled == {}

        order = Order.objects.get(id=awaiting_order.id)
        assert order.status == OrderStatus.APP_DELIVERING
        assert order.version == awaiting_order.version

        errors = _payment_events("PaymentErrorRaised")
        assert [e.payload["error"]["code"] for e in errors] == ["PAYMENT_TIMEOUT"]
        assert errors[0].aggregate_id == str(awaiting_order.id)

    def test_person_to_person_window_polls_longer(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        _start(reconciler, order_service, awaiting_order, window=PaymentWindow.PERSON_TO_PERSON)

        results = [scheduler.fire(reconciler) for _ in range(20)]

        assert set(results) == {TICK_PENDING}
        assert len(scheduler.pending(POLL_TASK)) == 1

    def test_gateway_success_moves_order_to_payment_ok(
        self, reconciler, order_service, awaiting_order, gateway, gateway_status, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.return_value = gateway_status(
            AttemptStatus.SUCCESS, Decimal("1500"), "FC", "GW-1"
        )

        assert scheduler.fire(reconciler) == TICK_RESOLVED

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.resolved_by == ResolutionChannel.POLL
        assert attempt.gateway_transaction_id == "GW-1"
        order = Order.objects.get(id=awaiting_order.id)
        assert order.status == OrderStatus.PAYMENT_OK
        assert order.status_history.order_by("-created_at", "-id").first().actor == "payment.poll"

    def test_gateway_failure(
        self, reconciler, order_service, awaiting_order, gateway, gateway_status, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.return_value = gateway_status(AttemptStatus.FAILURE)

        assert scheduler.fire(reconciler) == TICK_RESOLVED

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.FAILURE
        assert attempt.failure_reason == "gateway:FAILURE"
        assert not attempt.requires_review
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.APP_DELIVERING

    def test_amount_mismatch_fails_for_review(
        self, reconciler, order_service, awaiting_order, gateway, gateway_status, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.return_value = gateway_status(
            AttemptStatus.SUCCESS, Decimal("1000"), "CDF", "GW-2"
        )

        scheduler.fire(reconciler)

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.FAILURE
        assert attempt.requires_review
        assert attempt.failure_reason == "amount_mismatch"
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.APP_DELIVERING
        errors = _payment_events("PaymentErrorRaised")
        assert errors[0].payload["error"]["code"] == "PAYMENT_AMOUNT_MISMATCH"

    @pytest.mark.parametrize(
        "amount, currency",
        [(None, None), (None, "CDF"), (Decimal("1500"), None)],
    )
    def test_success_without_amount_or_currency_fails_for_review(
        self,
        reconciler,
        order_service,
        awaiting_order,
        gateway,
        gateway_status,
        scheduler,
        amount,
        currency,
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.return_value = gateway_status(
            AttemptStatus.SUCCESS, amount, currency, "GW-X"
        )

        assert scheduler.fire(reconciler) == TICK_RESOLVED

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.FAILURE
        assert attempt.requires_review
        assert attempt.failure_reason == "amount_mismatch"
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.APP_DELIVERING
        errors = _payment_events("PaymentErrorRaised")
        assert errors[0].payload["error"]["code"] == "PAYMENT_AMOUNT_MISMATCH"

    def test_order_conflict_keeps_the_attempt_open(
        self, reconciler, order_service, awaiting_order, gateway, gateway_status, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.return_value = gateway_status(
            AttemptStatus.SUCCESS, Decimal("1500"), "CDF", "GW-1"
        )

        with patch.object(
            order_service, "transition", side_effect=ConcurrentModification("conflict")
        ):
            assert scheduler.fire(reconciler) == TICK_ERROR

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.PENDING
        assert not attempt.requires_review
        assert _payment_events("PaymentResolved") == []
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.APP_DELIVERING
        assert len(scheduler.pending(POLL_TASK)) == 1

        assert scheduler.fire(reconciler) == TICK_RESOLVED

        assert PaymentAttempt.objects.get(deposit_id=started.deposit_id).status == (
            AttemptStatus.SUCCESS
        )
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_gateway_error_keeps_polling(
        self, reconciler, order_service, awaiting_order, gateway, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        gateway.check_payment.side_effect = GatewayError("gateway returned 503")

        assert scheduler.fire(reconciler) == TICK_PENDING

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.PENDING
        assert attempt.poll_count == 1
        assert len(scheduler.pending(POLL_TASK)) == 1

    def test_stale_handle_is_ignored(
        self, reconciler, order_service, awaiting_order, gateway, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)

        assert reconciler.poll_tick(started.deposit_id, "not-the-current-handle") == TICK_STALE
        gateway.check_payment.assert_not_called()


class TestSmsChannel:
    def test_sms_confirms_before_the_poll(
        self, reconciler, order_service, awaiting_order, scheduler, make_sms
    ):
        started = _start(reconciler, order_service, awaiting_order)
        poll_handle = scheduler.pending(POLL_TASK)[0]["handle_id"]

        outcome = reconciler.handle_sms(make_sms(CONFIRMATION, age_s=40))

        assert outcome.resolved
        assert outcome.deposit_id == started.deposit_id
        assert outcome.transaction_id == "MP240301ABCD"
        assert poll_handle in scheduler.cancelled
        assert scheduler.scheduled == {}

        attempt = PaymentAttempt.objects.get(deposit_id=started.deposit_id)
        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.resolved_by == ResolutionChannel.SMS
        assert attempt.poll_handle_id is None
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_late_channels_are_no_ops(
        self, reconciler, order_service, awaiting_order, gateway, make_sms
    ):
        started = _start(reconciler, order_service, awaiting_order)
        reconciler.handle_sms(make_sms(CONFIRMATION))
        version = Order.objects.get(id=awaiting_order.id).version

        assert reconciler.poll_tick(started.deposit_id, "any") == TICK_STALE
        assert reconciler.handle_sms(make_sms(CONFIRMATION)).reason == "no_open_listener"
        assert Order.objects.get(id=awaiting_order.id).version == version
        assert len(_payment_events("PaymentResolved")) == 1
        gateway.check_payment.assert_not_called()

    def test_old_sms_is_rejected(self, reconciler, order_service, awaiting_order, make_sms):
        _start(reconciler, order_service, awaiting_order)

        outcome = reconciler.handle_sms(make_sms(CONFIRMATION, age_s=600))

        assert not outcome.resolved
        assert outcome.reason == "too_old"

    def test_wrong_amount_is_rejected(self, reconciler, order_service, awaiting_order, make_sms):
        _start(reconciler, order_service, awaiting_order)

        outcome = reconciler.handle_sms(make_sms("PAWAPAY TID: MP99 paiement 2 000 FC"))

        assert outcome.reason == "amount_mismatch"
        attempt = PaymentAttempt.objects.get(deposit_id=awaiting_order.deposit_id)
        assert attempt.status == AttemptStatus.PENDING

    def test_ambiguous_sms_resolves_nothing(
        self, reconciler, order_service, awaiting_order, make_order, driver, make_sms
    ):
        other = make_order(
            status=OrderStatus.APP_DELIVERING,
            delivery_method=awaiting_order.delivery_method,
            driver=driver,
            deposit_id="dep-other",
        )
        _start(reconciler, order_service, awaiting_order)
        _start(reconciler, order_service, other)

        outcome = reconciler.handle_sms(make_sms(CONFIRMATION))

        assert outcome.reason == "ambiguous"
        assert not PaymentAttempt.objects.filter(status=AttemptStatus.SUCCESS).exists()

        targeted = reconciler.handle_sms(make_sms(CONFIRMATION), deposit_id="dep-other")
        assert targeted.resolved
        assert targeted.deposit_id == "dep-other"

    def test_transaction_id_cannot_be_reused(
        self, reconciler, order_service, awaiting_order, make_order, driver, make_sms
    ):
        _start(reconciler, order_service, awaiting_order)
        reconciler.handle_sms(make_sms(CONFIRMATION))
        other = make_order(
            status=OrderStatus.APP_DELIVERING,
            delivery_method=awaiting_order.delivery_method,
            driver=driver,
            deposit_id="dep-second",
        )
        _start(reconciler, order_service, other)

        outcome = reconciler.handle_sms(make_sms(CONFIRMATION))

        assert not outcome.resolved
        assert outcome.reason == "duplicate_transaction"
        assert PaymentAttempt.objects.get(deposit_id="dep-second").is_open

    def test_listener_expiry_closes_only_the_sms_channel(
        self, reconciler, order_service, awaiting_order, scheduler, make_sms
    ):
        _start(reconciler, order_service, awaiting_order)

        assert scheduler.fire(reconciler, SMS_EXPIRY_TASK) is True

        attempt = PaymentAttempt.objects.get(deposit_id=awaiting_order.deposit_id)
        assert not attempt.sms_listener_enabled
        assert attempt.is_open
        assert len(scheduler.pending(POLL_TASK)) == 1
        assert reconciler.handle_sms(make_sms(CONFIRMATION)).reason == "no_open_listener"
        assert len(_payment_events("SmsListenerExpired")) == 1

    def test_resume_reopens_an_expired_listener(
        self, reconciler, order_service, awaiting_order, scheduler, make_sms
    ):
        _start(reconciler, order_service, awaiting_order)
        scheduler.fire(reconciler, SMS_EXPIRY_TASK)

        resumed = reconciler.resume_confirmation(awaiting_order.deposit_id)

        assert resumed.resumed
        assert ChannelKind.SMS in {h.kind for h in resumed.handles}
        assert reconciler.handle_sms(make_sms(CONFIRMATION)).resolved


def _paid_without_effect(deposit_id):
    """Attempt committed as SUCCESS while its order stayed in app_delivering."""
    PaymentAttempt.objects.filter(deposit_id=deposit_id).update(
        status=AttemptStatus.SUCCESS,
        resolved_by=ResolutionChannel.SMS,
        poll_handle_id=None,
        sms_listener_enabled=False,
    )


class TestPaidOrderRecovery:
    def test_restart_moves_the_order_on_without_charging(
        self, reconciler, order_service, awaiting_order, gateway, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        _paid_without_effect(started.deposit_id)

        again = _start(reconciler, order_service, awaiting_order)

        assert again.resumed
        assert again.status == AttemptStatus.SUCCESS
        assert again.handles == []
        assert gateway.initiate_deposit.call_count == 1
        order = Order.objects.get(id=awaiting_order.id)
        assert order.status == OrderStatus.PAYMENT_OK
        assert order.status_history.order_by("-created_at", "-id").first().actor == "payment.sms"

    def test_resume_moves_the_order_on(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        _paid_without_effect(started.deposit_id)

        resumed = reconciler.resume_confirmation(started.deposit_id)

        assert resumed.status == AttemptStatus.SUCCESS
        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_staff_approval_moves_the_order_on(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        pending = reconciler.submit_manual_confirmation(
            started.deposit_id, CONFIRMATION, "MP240301ABCD"
        )
        _paid_without_effect(started.deposit_id)

        reconciler.review_manual_confirmation(pending.confirmation_id, approve=True)

        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.PAYMENT_OK

    def test_attempt_under_review_is_not_reapplied(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        started = _start(reconciler, order_service, awaiting_order)
        _paid_without_effect(started.deposit_id)
        PaymentAttempt.objects.filter(deposit_id=started.deposit_id).update(requires_review=True)

        with pytest.raises(AttemptAlreadyResolved):
            _start(reconciler, order_service, awaiting_order)

        assert Order.objects.get(id=awaiting_order.id).status == OrderStatus.APP_DELIVERING


class TestSubscription:
    def test_subscription_verifies_seller(
        self, reconciler, seller, gateway, gateway_status, scheduler
    ):
        started = reconciler.start_subscription_deposit(seller.id, PAYER)
        gateway.check_payment.return_value = gateway_status(
            AttemptStatus.SUCCESS, Decimal("5000"), "CDF", "GW-SUB"
        )

        scheduler.fire(reconciler)

        seller.refresh_from_db()
        assert seller.verification_active
        remaining = seller.verified_until - timezone.now()
        assert timedelta(days=29, hours=23) < remaining <= timedelta(days=30)
        resolved = _payment_events("PaymentResolved")
        assert resolved[0].aggregate_id == str(seller.id)
        assert resolved[0].payload["deposit_id"] == started.deposit_id

    def test_unknown_seller(self, reconciler, gateway):
        with pytest.raises(SellerNotFound):
            reconciler.start_subscription_deposit(
                "00000000-0000-0000-0000-000000000000", PAYER
            )
        gateway.initiate_deposit.assert_not_called()


class TestCancel:
    def test_cancel_for_order_stops_everything(
        self, reconciler, order_service, awaiting_order, scheduler
    ):
        _start(reconciler, order_service, awaiting_order)

        assert reconciler.cancel_for_order(awaiting_order.id) == 1

        attempt = PaymentAttempt.objects.get(deposit_id=awaiting_order.deposit_id)
        assert attempt.status == AttemptStatus.CANCELLED
        assert scheduler.scheduled == {}
        assert reconciler.cancel_for_order(awaiting_order.id) == 0
