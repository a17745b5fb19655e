"""Payment reconciliation.

A deposit is confirmed by whichever channel gets there first:

1. **Poll**: a timer checks the gateway every ``POLL_INTERVAL_S`` until
   a terminal status, or marks the attempt ``TIMEOUT`` once
   ``POLL_MAX_ATTEMPTS`` (``P2P_POLL_MAX_ATTEMPTS`` for person-to-person
   deposits) checks came back pending.
2. **SMS**: a provider confirmation forwarded by the payer's device,
   accepted while the listener is open (``SMS_MAX_AGE_S``).
3. **Manual**: a pasted confirmation recorded for staff review; only an
   approval resolves the attempt.

Resolution is one conditioned update on the attempt status, so exactly
one channel wins. The winner stops the others (timers revoked, SMS
listener closed) and applies the effect: the order moves to
``payment_ok``, or the seller is verified for ``SUBSCRIPTION_DAYS``.

Timer entry points (``poll_tick``, ``expire_sms_listener``) never
raise; a stale or late tick is a no-op.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence
from uuid import UUID, uuid4

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import ConcurrentModification, InvalidTransition
from modules.payments.constants import (
    CURRENCY_ALIASES,
    POLL_TASK,
    SMS_EXPIRY_TASK,
    AttemptStatus,
    ChannelKind,
    ConfirmationStatus,
    PaymentProgress,
    PaymentPurpose,
    PaymentWindow,
    ResolutionChannel,
)
from modules.payments.dtos import (
    ChannelHandle,
    DepositStarted,
    ManualConfirmationPending,
    SmsOutcome,
)
from modules.payments.events import (
    ManualConfirmationReviewed,
    ManualConfirmationSubmitted,
    PaymentErrorRaised,
    PaymentProgressChanged,
    PaymentResolved,
    SmsListenerExpired,
)
from modules.payments.exceptions import (
    AttemptAlreadyResolved,
    ConfirmationAlreadyReviewed,
    DepositInitiationFailed,
    ManualConfirmationNotFound,
    PaymentAmountMismatch,
    PaymentAttemptNotFound,
    PaymentFailed,
    PaymentTimeout,
)
from modules.payments.gateway import DepositRequest, GatewayError
from modules.payments.scheduler import get_scheduler
from modules.payments.signals import payment_resolved
from modules.payments.sms import SmsMatcher
from modules.sellers.exceptions import SellerNotFound
from shared.domain.errors import FulfillmentError

if TYPE_CHECKING:
    from modules.orders.dtos import OrderSnapshot
    from modules.orders.services import OrderTransitionService
    from modules.payments.gateway import GatewayStatus, PaymentGatewayClient
    from modules.payments.models import ManualConfirmation, PaymentAttempt
    from modules.payments.repositories.interfaces import IPaymentAttemptRepository
    from modules.payments.scheduler import ITimerScheduler
    from modules.payments.sms import SmsMessage
    from modules.sellers.services import SellerVerificationService

logger = structlog.get_logger(__name__)

GATEWAY_AMOUNT_TOLERANCE = Decimal("0.01")

TICK_STALE = "stale"
TICK_PENDING = "pending"
TICK_RESOLVED = "resolved"
TICK_LOST = "lost"
TICK_ERROR = "error"


class PaymentReconciler:
    def __init__(
        self,
        gateway: PaymentGatewayClient,
        attempt_repository: IPaymentAttemptRepository,
        order_service: OrderTransitionService,
        seller_service: SellerVerificationService,
        scheduler: Optional[ITimerScheduler] = None,
        matcher: Optional[SmsMatcher] = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._gateway = gateway
        self._attempts = attempt_repository
        self._orders = order_service
        self._sellers = seller_service
        self._scheduler = scheduler
        self._matcher = matcher or SmsMatcher()
        self._clock = clock

    @property
    def scheduler(self) -> ITimerScheduler:
        return self._scheduler or get_scheduler()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_attempt(self, deposit_id: str) -> PaymentAttempt:
        attempt = self._attempts.get_by_deposit_id(deposit_id)
        if attempt is None:
            raise PaymentAttemptNotFound(f"Deposit {deposit_id} not found.")
        return attempt

    def latest_for_order(self, order_id: UUID | str) -> Optional[PaymentAttempt]:
        return self._attempts.latest_for_order(order_id)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start_courier_deposit(
        self,
        order: OrderSnapshot,
        payer_phone: str,
        recipient_phone: str = "",
        *,
        window: str = PaymentWindow.STANDARD,
        sms_capable: bool = True,
    ) -> DepositStarted:
        """Collect the courier fee for an order waiting in ``app_delivering``.

        A second call for a deposit that is still open resumes it instead
        of initiating a second charge. A deposit that was paid while the
        order stayed in ``app_delivering`` moves the order on without
        charging again.
        """
        if order.status != OrderStatus.APP_DELIVERING or not order.deposit_id:
            raise InvalidTransition(str(order.status), OrderStatus.PAYMENT_OK)

        existing = self._attempts.get_by_deposit_id(order.deposit_id)
        if existing is not None:
            if existing.is_open:
                return self.resume_confirmation(existing.deposit_id, sms_capable=sms_capable)
            if existing.status == AttemptStatus.SUCCESS and not existing.requires_review:
                return self._reapply_success(existing)
            raise AttemptAlreadyResolved(
                f"Deposit {existing.deposit_id} is already {existing.status}.",
                deposit_id=existing.deposit_id,
            )

        return self.start_deposit(
            purpose=PaymentPurpose.COURIER_LEG,
            deposit_id=order.deposit_id,
            amount=settings.FULFILLMENT["COURIER_FEE"],
            currency=settings.FULFILLMENT["CURRENCY"],
            payer_phone=payer_phone,
            recipient_phone=recipient_phone,
            order_id=order.id,
            window=window,
            sms_capable=sms_capable,
        )

    def start_subscription_deposit(
        self,
        seller_id: UUID,
        payer_phone: str,
        recipient_phone: str = "",
        *,
        window: str = PaymentWindow.STANDARD,
        sms_capable: bool = True,
    ) -> DepositStarted:
        self._sellers.get_seller(seller_id)
        return self.start_deposit(
            purpose=PaymentPurpose.SELLER_SUBSCRIPTION,
            deposit_id=str(uuid4()),
            amount=settings.FULFILLMENT["SUBSCRIPTION_FEE"],
            currency=settings.FULFILLMENT["CURRENCY"],
            payer_phone=payer_phone,
            recipient_phone=recipient_phone,
            seller_id=seller_id,
            window=window,
            sms_capable=sms_capable,
        )

    def start_deposit(
        self,
        *,
        purpose: str,
        deposit_id: str,
        amount: int,
        currency: str,
        payer_phone: str,
        recipient_phone: str = "",
        order_id: Optional[UUID] = None,
        seller_id: Optional[UUID] = None,
        window: str = PaymentWindow.STANDARD,
        sms_capable: bool = True,
    ) -> DepositStarted:
        """Create the attempt, initiate the deposit, open the channels.

        Raises:
            DepositInitiationFailed: the gateway is unreachable or refused.
        """
        log = logger.bind(deposit_id=deposit_id, purpose=purpose)
        try:
            with transaction.atomic():
                attempt = self._attempts.create(
                    {
                        "deposit_id": deposit_id,
                        "purpose": purpose,
                        "order_id": order_id,
                        "seller_id": seller_id,
                        "amount": amount,
                        "currency": currency,
                        "payer_phone": payer_phone,
                        "recipient_phone": recipient_phone,
                        "window": window,
                    }
                )
                self._attempts.record_events([self._progress_event(attempt)])
        except IntegrityError:
            log.info("payment.start_duplicate")
            return self.resume_confirmation(deposit_id, sms_capable=sms_capable)

        try:
            self._gateway.initiate_deposit(
                DepositRequest(
                    deposit_id=deposit_id,
                    phone=payer_phone,
                    amount=amount,
                    currency=currency,
                    recipient_phone=recipient_phone,
                )
            )
        except DepositInitiationFailed as exc:
            self._resolve(attempt, AttemptStatus.FAILURE, None, reason=str(exc), error=exc)
            raise

        self._attempts.mark_initiated(deposit_id, self._clock())
        attempt = self.get_attempt(deposit_id)
        handles = self._open_channels(attempt, sms_capable)
        self._attempts.record_events([self._progress_event(attempt)])
        log.info("payment.channels_opened", channels=[h.kind for h in handles])
        return DepositStarted(
            deposit_id=deposit_id,
            status=attempt.status,
            progress=attempt.progress,
            handles=handles,
        )

    def resume_confirmation(self, deposit_id: str, *, sms_capable: bool = True) -> DepositStarted:
        """Reopen the channels of an open attempt (screen reopened)."""
        attempt = self.get_attempt(deposit_id)
        if attempt.status == AttemptStatus.SUCCESS and self._effect_missing(attempt):
            return self._reapply_success(attempt)
        handles: List[ChannelHandle] = []
        if attempt.is_open and attempt.initiated:
            handles = self._open_channels(attempt, sms_capable)
            attempt = self.get_attempt(deposit_id)
        logger.info(
            "payment.confirmation_resumed",
            deposit_id=deposit_id,
            status=attempt.status,
            channels=[h.kind for h in handles],
        )
        return DepositStarted(
            deposit_id=deposit_id,
            status=attempt.status,
            progress=attempt.progress,
            handles=handles,
            resumed=True,
        )

    # ------------------------------------------------------------------
    # Poll channel
    # ------------------------------------------------------------------

    def poll_tick(self, deposit_id: str, handle_id: str) -> str:
        """One gateway check. Never raises."""
        try:
            return self._poll_once(deposit_id, handle_id)
        except ConcurrentModification as exc:
            logger.warning("payment.effect_conflict", deposit_id=deposit_id, error=str(exc))
        except Exception:
            logger.exception("payment.poll_tick_crashed", deposit_id=deposit_id)
        try:
            self._schedule_next_poll(deposit_id, handle_id)
        except Exception:
            logger.exception("payment.poll_reschedule_failed", deposit_id=deposit_id)
        return TICK_ERROR

    def _poll_once(self, deposit_id: str, handle_id: str) -> str:
        attempt = self._attempts.get_by_deposit_id(deposit_id)
        if attempt is None or not attempt.is_open or attempt.poll_handle_id != handle_id:
            logger.debug("payment.poll_tick_stale", deposit_id=deposit_id, handle_id=handle_id)
            return TICK_STALE

        count = self._attempts.increment_poll_count(deposit_id)
        log = logger.bind(deposit_id=deposit_id, poll=count)
        result: Optional[GatewayStatus] = None
        try:
            result = self._gateway.check_payment(deposit_id)
        except GatewayError as exc:
            log.warning("payment.poll_tick_failed", error=str(exc))

        if result is not None and result.status == AttemptStatus.SUCCESS:
            if not _same_amount(attempt, result):
                log.warning(
                    "payment.amount_mismatch",
                    expected=attempt.amount,
                    received=str(result.amount),
                    currency=result.currency,
                )
                won = self._resolve(
                    attempt,
                    AttemptStatus.FAILURE,
                    ResolutionChannel.POLL,
                    reason="amount_mismatch",
                    requires_review=True,
                    transaction_id=result.transaction_id,
                    error=PaymentAmountMismatch(
                        f"Expected {attempt.amount} {attempt.currency}, "
                        f"gateway reported {result.amount} {result.currency}.",
                    ),
                )
            else:
                won = self._resolve(
                    attempt,
                    AttemptStatus.SUCCESS,
                    ResolutionChannel.POLL,
                    transaction_id=result.transaction_id,
                )
            return TICK_RESOLVED if won else TICK_LOST

        if result is not None and result.status == AttemptStatus.FAILURE:
            won = self._resolve(
                attempt,
                AttemptStatus.FAILURE,
                ResolutionChannel.POLL,
                reason=f"gateway:{result.raw_status}",
                error=PaymentFailed(f"Gateway reported {result.raw_status}."),
            )
            return TICK_RESOLVED if won else TICK_LOST

        if count >= self._max_polls(attempt):
            won = self._resolve(
                attempt,
                AttemptStatus.TIMEOUT,
                ResolutionChannel.POLL,
                reason="poll_exhausted",
                error=PaymentTimeout(f"No confirmation after {count} checks."),
            )
            return TICK_RESOLVED if won else TICK_LOST

        self._schedule_next_poll(deposit_id, handle_id)
        return TICK_PENDING

    def _schedule_next_poll(self, deposit_id: str, current_handle: str) -> None:
        new_handle = str(uuid4())
        if self._attempts.swap_poll_handle(deposit_id, current_handle, new_handle):
            self.scheduler.schedule(
                POLL_TASK,
                settings.FULFILLMENT["POLL_INTERVAL_S"],
                {"deposit_id": deposit_id},
                handle_id=new_handle,
            )
        else:
            logger.debug("payment.poll_stopped", deposit_id=deposit_id)

    # ------------------------------------------------------------------
    # SMS channel
    # ------------------------------------------------------------------

    def handle_sms(self, message: SmsMessage, deposit_id: Optional[str] = None) -> SmsOutcome:
        """Try to resolve an open attempt with an inbound SMS."""
        now = self._clock()
        candidates = self._attempts.open_sms_listeners(now, deposit_id)
        if not candidates:
            logger.info("payment.sms_no_listener", deposit_id=deposit_id)
            return SmsOutcome(resolved=False, reason="no_open_listener")

        matches = []
        reasons = []
        for attempt in candidates:
            result = self._matcher.match(message, attempt.amount, attempt.currency, now)
            if result.matched:
                matches.append((attempt, result))
            else:
                reasons.append(result.reason)

        if not matches:
            logger.info("payment.sms_unmatched", reasons=reasons)
            return SmsOutcome(resolved=False, reason=reasons[0])
        if len(matches) > 1:
            logger.warning(
                "payment.sms_ambiguous", deposit_ids=[a.deposit_id for a, _ in matches]
            )
            return SmsOutcome(resolved=False, reason="ambiguous")

        attempt, result = matches[0]
        if self._attempts.transaction_id_used(result.transaction_id):
            logger.warning(
                "payment.sms_duplicate_transaction",
                deposit_id=attempt.deposit_id,
                transaction_id=result.transaction_id,
            )
            return SmsOutcome(
                resolved=False,
                deposit_id=attempt.deposit_id,
                transaction_id=result.transaction_id,
                reason="duplicate_transaction",
            )

        won = self._resolve(
            attempt,
            AttemptStatus.SUCCESS,
            ResolutionChannel.SMS,
            transaction_id=result.transaction_id,
        )
        return SmsOutcome(
            resolved=won,
            deposit_id=attempt.deposit_id,
            transaction_id=result.transaction_id,
            reason=None if won else "already_resolved",
        )

    def expire_sms_listener(self, deposit_id: str, handle_id: str) -> bool:
        """Close the SMS channel when its window ends. Never raises."""
        try:
            with transaction.atomic():
                if not self._attempts.disable_sms_listener(deposit_id, handle_id):
                    return False
                attempt = self.get_attempt(deposit_id)
                self._attempts.record_events(
                    [SmsListenerExpired(aggregate_id=attempt.subject_id, deposit_id=deposit_id)]
                )
        except Exception:
            logger.exception("payment.sms_expiry_failed", deposit_id=deposit_id)
            return False
        logger.info("payment.sms_listener_expired", deposit_id=deposit_id)
        return True

    # ------------------------------------------------------------------
    # Manual channel
    # ------------------------------------------------------------------

    def submit_manual_confirmation(
        self, deposit_id: str, raw_sms_text: str, transaction_id: str
    ) -> ManualConfirmationPending:
        """Record a pasted confirmation for review; does not resolve."""
        attempt = self.get_attempt(deposit_id)
        if attempt.status in (AttemptStatus.SUCCESS, AttemptStatus.CANCELLED):
            raise AttemptAlreadyResolved(
                f"Deposit {deposit_id} is already {attempt.status}.", deposit_id=deposit_id
            )

        with transaction.atomic():
            confirmation = self._attempts.add_confirmation(
                attempt, raw_sms_text, transaction_id.strip().upper()
            )
            outcome = ManualConfirmationPending(
                confirmation_id=confirmation.id,
                deposit_id=deposit_id,
                status=confirmation.status,
            )
            self._attempts.record_events(
                [
                    ManualConfirmationSubmitted(
                        aggregate_id=attempt.subject_id,
                        deposit_id=deposit_id,
                        confirmation_id=str(confirmation.id),
                        outcome=outcome.outcome,
                    )
                ]
            )
        logger.info(
            "payment.manual_confirmation_submitted",
            deposit_id=deposit_id,
            confirmation_id=str(confirmation.id),
        )
        return outcome

    def review_manual_confirmation(
        self,
        confirmation_id: UUID | str,
        approve: bool,
        notes: str = "",
        reviewer: str = "",
    ) -> ManualConfirmation:
        """Approve (resolves the attempt through the manual channel) or reject.

        An attempt that timed out, or failed with a review flag, can still
        be resolved by an approval.
        """
        confirmation = self._attempts.get_confirmation(confirmation_id)
        if confirmation is None:
            raise ManualConfirmationNotFound(f"Confirmation {confirmation_id} not found.")

        status = ConfirmationStatus.APPROVED if approve else ConfirmationStatus.REJECTED
        deposit_id = confirmation.attempt.deposit_id
        with transaction.atomic():
            if not self._attempts.review_confirmation(confirmation.id, status, notes, reviewer):
                raise ConfirmationAlreadyReviewed(
                    f"Confirmation {confirmation_id} was already reviewed."
                )
            self._attempts.record_events(
                [
                    ManualConfirmationReviewed(
                        aggregate_id=confirmation.attempt.subject_id,
                        deposit_id=deposit_id,
                        confirmation_id=str(confirmation.id),
                        status=status,
                    )
                ]
            )
            if approve:
                won = self._resolve(
                    confirmation.attempt,
                    AttemptStatus.SUCCESS,
                    ResolutionChannel.MANUAL,
                    transaction_id=confirmation.transaction_id,
                    from_statuses=(AttemptStatus.PENDING, AttemptStatus.TIMEOUT),
                    include_review=True,
                )
                if not won:
                    current = self.get_attempt(deposit_id)
                    if current.status != AttemptStatus.SUCCESS:
                        raise AttemptAlreadyResolved(
                            f"Deposit {deposit_id} can no longer be confirmed.",
                            deposit_id=deposit_id,
                        )
                    if self._effect_missing(current):
                        self._reapply_success(current)

        logger.info(
            "payment.manual_confirmation_reviewed",
            deposit_id=deposit_id,
            confirmation_id=str(confirmation.id),
            status=status,
        )
        return self._attempts.get_confirmation(confirmation.id)

    # ------------------------------------------------------------------
    # Stop / cancel
    # ------------------------------------------------------------------

    def stop_channels(self, deposit_id: str) -> None:
        """Revoke the timers and close the SMS listener of a deposit."""
        attempt = self._attempts.get_by_deposit_id(deposit_id)
        if attempt is None:
            return
        for handle_id in (attempt.poll_handle_id, attempt.sms_expiry_handle_id):
            if handle_id:
                self.scheduler.cancel(handle_id)
        self._attempts.clear_channels(deposit_id)
        logger.info("payment.channels_stopped", deposit_id=deposit_id)

    def cancel_for_order(self, order_id: UUID | str) -> int:
        """Cancel every open attempt of an order; returns how many."""
        cancelled = 0
        for attempt in self._attempts.open_for_order(order_id):
            if self._resolve(attempt, AttemptStatus.CANCELLED, None, reason="order_cancelled"):
                cancelled += 1
        return cancelled

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_channels(self, attempt: PaymentAttempt, sms_capable: bool) -> List[ChannelHandle]:
        conf = settings.FULFILLMENT
        handles = []
        subject_id = attempt.subject_id

        poll_handle = attempt.poll_handle_id
        if poll_handle is None:
            new_handle = str(uuid4())
            if self._attempts.swap_poll_handle(attempt.deposit_id, None, new_handle):
                self.scheduler.schedule(
                    POLL_TASK,
                    conf["POLL_INTERVAL_S"],
                    {"deposit_id": attempt.deposit_id},
                    handle_id=new_handle,
                )
                poll_handle = new_handle
        if poll_handle is not None:
            handles.append(
                ChannelHandle(
                    kind=ChannelKind.POLL,
                    deposit_id=attempt.deposit_id,
                    handle_id=poll_handle,
                    subject_id=subject_id,
                )
            )

        if conf["SMS_CHANNEL_ENABLED"] and sms_capable:
            now = self._clock()
            sms_handle = attempt.sms_expiry_handle_id
            still_open = (
                attempt.sms_listener_enabled
                and attempt.sms_listener_expires_at is not None
                and attempt.sms_listener_expires_at > now
            )
            if not still_open:
                if sms_handle:
                    self.scheduler.cancel(sms_handle)
                sms_handle = str(uuid4())
                window = conf["SMS_MAX_AGE_S"]
                if self._attempts.enable_sms_listener(
                    attempt.deposit_id, now + timedelta(seconds=window), sms_handle
                ):
                    self.scheduler.schedule(
                        SMS_EXPIRY_TASK,
                        window,
                        {"deposit_id": attempt.deposit_id},
                        handle_id=sms_handle,
                    )
                else:
                    sms_handle = None
            if sms_handle:
                handles.append(
                    ChannelHandle(
                        kind=ChannelKind.SMS,
                        deposit_id=attempt.deposit_id,
                        handle_id=sms_handle,
                        subject_id=subject_id,
                    )
                )
        return handles

    def _resolve(
        self,
        attempt: PaymentAttempt,
        status: str,
        channel: Optional[str],
        *,
        reason: str = "",
        requires_review: bool = False,
        transaction_id: Optional[str] = None,
        error: Optional[FulfillmentError] = None,
        from_statuses: Sequence[str] = (AttemptStatus.PENDING,),
        include_review: bool = False,
    ) -> bool:
        """Compare-and-swap the attempt to a terminal status.

        Returns ``False`` when another channel resolved it first, in
        which case nothing else happens. A success commits together with
        its effect: when the order write conflicts, ``ConcurrentModification``
        propagates and the attempt stays open for the next channel.
        """
        fields = {
            "resolved_by": channel,
            "failure_reason": reason,
            "requires_review": requires_review,
        }
        if transaction_id:
            fields["gateway_transaction_id"] = transaction_id

        with transaction.atomic():
            won = self._attempts.resolve(
                attempt.deposit_id, status, from_statuses, fields, include_review
            )
            if not won:
                logger.info(
                    "payment.resolution_lost",
                    deposit_id=attempt.deposit_id,
                    status=status,
                    channel=channel,
                )
                return False

            progress = (
                PaymentProgress.SUCCESS
                if status == AttemptStatus.SUCCESS
                else PaymentProgress.FAILED
            )
            events = [
                PaymentResolved(
                    aggregate_id=attempt.subject_id,
                    deposit_id=attempt.deposit_id,
                    status=status,
                    channel=channel,
                    requires_review=requires_review,
                ),
                PaymentProgressChanged(
                    aggregate_id=attempt.subject_id,
                    deposit_id=attempt.deposit_id,
                    progress=progress,
                    status=status,
                ),
            ]
            if error is not None:
                events.append(
                    PaymentErrorRaised(
                        aggregate_id=attempt.subject_id,
                        deposit_id=attempt.deposit_id,
                        error=error.as_dict(),
                    )
                )
            self._attempts.record_events(events)
            if status == AttemptStatus.SUCCESS:
                self._apply_success(attempt, channel)

        logger.info(
            "payment.resolved",
            deposit_id=attempt.deposit_id,
            status=status,
            channel=channel,
            reason=reason,
        )
        self.stop_channels(attempt.deposit_id)
        payment_resolved.send(
            sender=type(self),
            deposit_id=attempt.deposit_id,
            subject_id=attempt.subject_id,
            status=status,
        )
        return True

    def _apply_success(self, attempt: PaymentAttempt, channel: Optional[str]) -> None:
        """Move the order to ``payment_ok`` or verify the seller.

        An order that already left ``app_delivering`` (cancelled, delivered)
        flags the attempt for review instead.
        """
        log = logger.bind(deposit_id=attempt.deposit_id, purpose=attempt.purpose)
        try:
            if attempt.purpose == PaymentPurpose.COURIER_LEG:
                order = self._orders.get_order(attempt.order_id)
                if order.status == OrderStatus.PAYMENT_OK:
                    return
                self._orders.transition(
                    order,
                    OrderStatus.PAYMENT_OK,
                    actor=f"payment.{channel}",
                    notes=f"Deposit {attempt.deposit_id} confirmed",
                )
            else:
                self._sellers.grant(attempt.seller_id, settings.FULFILLMENT["SUBSCRIPTION_DAYS"])
        except (InvalidTransition, SellerNotFound) as exc:
            log.error("payment.effect_failed", error=str(exc))
            self._attempts.flag_for_review(attempt.deposit_id, f"effect_failed:{exc.code}")

    def _effect_missing(self, attempt: PaymentAttempt) -> bool:
        if attempt.purpose != PaymentPurpose.COURIER_LEG or attempt.requires_review:
            return False
        order = self._orders.get_order(attempt.order_id)
        return order.status == OrderStatus.APP_DELIVERING

    def _reapply_success(self, attempt: PaymentAttempt) -> DepositStarted:
        """Finish a paid deposit whose order never reached ``payment_ok``."""
        logger.warning(
            "payment.effect_reapplied",
            deposit_id=attempt.deposit_id,
            channel=attempt.resolved_by,
        )
        with transaction.atomic():
            self._apply_success(attempt, attempt.resolved_by)
        attempt = self.get_attempt(attempt.deposit_id)
        return DepositStarted(
            deposit_id=attempt.deposit_id,
            status=attempt.status,
            progress=attempt.progress,
            handles=[],
            resumed=True,
        )

    def _progress_event(self, attempt: PaymentAttempt) -> PaymentProgressChanged:
        return PaymentProgressChanged(
            aggregate_id=attempt.subject_id,
            deposit_id=attempt.deposit_id,
            progress=attempt.progress,
            status=attempt.status,
        )

    @staticmethod
    def _max_polls(attempt: PaymentAttempt) -> int:
        conf = settings.FULFILLMENT
        if attempt.window == PaymentWindow.PERSON_TO_PERSON:
            return conf["P2P_POLL_MAX_ATTEMPTS"]
        return conf["POLL_MAX_ATTEMPTS"]


def _same_amount(attempt: PaymentAttempt, result: GatewayStatus) -> bool:
    """A success without an amount or currency never counts as a match."""
    if result.amount is None or not result.currency:
        return False
    if abs(result.amount - Decimal(attempt.amount)) > GATEWAY_AMOUNT_TOLERANCE:
        return False
    currency = CURRENCY_ALIASES.get(result.currency, result.currency)
    return currency == attempt.currency
