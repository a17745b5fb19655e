"""Order lifecycle controller.

Entry point of the apps' fulfillment commands. It composes delivery
assignment, payment reconciliation and proof capture, and owns the
registry of open confirmation channels per order.

Order writes are wrapped in a projection: a ``provisional`` event is
emitted before the conditioned write, then ``confirmed`` or
``rolled_back`` depending on its result. Errors are re-raised after
the rollback projection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, List, Optional, TypeVar
from uuid import UUID

import structlog

from modules.fulfillment.events import (
    PHASE_CONFIRMED,
    PHASE_PROVISIONAL,
    PHASE_ROLLED_BACK,
    OrderProjected,
)
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import InvalidTransition
from modules.payments.constants import AttemptStatus, PaymentWindow
from shared.domain.errors import FulfillmentError

if TYPE_CHECKING:
    from modules.deliveries.dtos import AssignmentResult, CandidateSearchResult, ProofResult
    from modules.deliveries.proof import Artifact, DeliveryProofService
    from modules.deliveries.repositories.interfaces import IDeliveryRepository
    from modules.deliveries.services import DeliveryAssignmentService
    from modules.drivers.dtos import Coordinates
    from modules.fulfillment.registry import ChannelRegistry
    from modules.orders.dtos import OrderSnapshot
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderTransitionService
    from modules.payments.dtos import ChannelHandle, DepositStarted
    from modules.payments.reconciler import PaymentReconciler

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Attempt outcomes after which the courier fee may be charged again.
RETRYABLE_ATTEMPT_STATUSES = {
    AttemptStatus.FAILURE,
    AttemptStatus.TIMEOUT,
    AttemptStatus.CANCELLED,
}


class OrderLifecycleController:
    def __init__(
        self,
        order_service: OrderTransitionService,
        order_repository: IOrderRepository,
        delivery_repository: IDeliveryRepository,
        assignment: DeliveryAssignmentService,
        reconciler: PaymentReconciler,
        proof: DeliveryProofService,
        registry: ChannelRegistry,
    ) -> None:
        self._orders = order_service
        self._order_repo = order_repository
        self._deliveries = delivery_repository
        self._assignment = assignment
        self._reconciler = reconciler
        self._proof = proof
        self._registry = registry

    # ------------------------------------------------------------------
    # Delivery choice
    # ------------------------------------------------------------------

    def find_candidates(
        self,
        order_id: UUID | str,
        seller_location: Coordinates,
        radius_km: Optional[float] = None,
    ) -> CandidateSearchResult:
        order = self._orders.get_order(order_id)
        return self._assignment.find_candidates(order, seller_location, radius_km)

    def choose_self_delivery(self, order_id: UUID | str, *, actor: str = "seller") -> OrderSnapshot:
        order = self._orders.get_order(order_id)
        return self._project(
            order,
            "self_delivery",
            OrderStatus.SELLER_DELIVERING,
            lambda: self._assignment.choose_self_delivery(order, actor=actor),
        )

    def assign(
        self,
        order_id: UUID | str,
        driver_id: Optional[UUID],
        seller_location: Coordinates,
        requires_prepayment: Optional[bool] = None,
        *,
        actor: str = "seller",
    ) -> AssignmentResult:
        order = self._orders.get_order(order_id)
        prepaying = (
            requires_prepayment if requires_prepayment is not None else not order.courier_fee_paid
        )
        provisional = OrderStatus.APP_DELIVERING if prepaying else OrderStatus.PAYMENT_OK
        return self._project(
            order,
            "assign",
            provisional,
            lambda: self._assignment.assign(
                order, driver_id, seller_location, requires_prepayment, actor=actor
            ),
            snapshot=lambda result: result.order,
        )

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def start_deposit(
        self,
        order_id: UUID | str,
        payer_phone: str,
        recipient_phone: str = "",
        *,
        window: str = PaymentWindow.STANDARD,
        sms_capable: bool = True,
        actor: str = "seller",
    ) -> DepositStarted:
        """Charge the courier fee of an order in ``app_delivering``.

        When the previous attempt failed or timed out, the order gets a
        new deposit id first so the gateway sees a new deposit.
        """
        order = self._orders.get_order(order_id)
        if order.status != OrderStatus.APP_DELIVERING or not order.deposit_id:
            raise InvalidTransition(str(order.status), OrderStatus.PAYMENT_OK)

        previous = self._reconciler.latest_for_order(order.id)
        if (
            previous is not None
            and previous.deposit_id == order.deposit_id
            and previous.status in RETRYABLE_ATTEMPT_STATUSES
            and not previous.requires_review
        ):
            order = self._orders.rotate_deposit_id(order, actor=actor)
            self._deliveries.update_deposit_id(order.id, order.deposit_id)

        started = self._reconciler.start_courier_deposit(
            order, payer_phone, recipient_phone, window=window, sms_capable=sms_capable
        )
        self._register(order.id, started.handles)
        return started

    def start_subscription(
        self,
        seller_id: UUID,
        payer_phone: str,
        recipient_phone: str = "",
        *,
        window: str = PaymentWindow.STANDARD,
        sms_capable: bool = True,
    ) -> DepositStarted:
        started = self._reconciler.start_subscription_deposit(
            seller_id, payer_phone, recipient_phone, window=window, sms_capable=sms_capable
        )
        self._register(seller_id, started.handles)
        return started

    def resume_confirmation(
        self, order_id: UUID | str, *, sms_capable: bool = True
    ) -> DepositStarted:
        """Reopen the confirmation screen of an order's pending deposit."""
        order = self._orders.get_order(order_id)
        if not order.deposit_id:
            raise InvalidTransition(str(order.status), OrderStatus.PAYMENT_OK)
        started = self._reconciler.resume_confirmation(order.deposit_id, sms_capable=sms_capable)
        self._register(order.id, started.handles)
        return started

    def close_session(self, subject_id: UUID | str) -> int:
        """Stop every channel opened for an order or seller. Returns how many."""
        handles = self._registry.pop(subject_id)
        deposit_ids = {handle.deposit_id for handle in handles}
        latest = self._reconciler.latest_for_order(subject_id)
        if latest is not None and latest.is_open:
            deposit_ids.add(latest.deposit_id)
        for handle in handles:
            self._reconciler.scheduler.cancel(handle.handle_id)
        for deposit_id in deposit_ids:
            self._reconciler.stop_channels(deposit_id)
        logger.info(
            "fulfillment.session_closed",
            subject_id=str(subject_id),
            handles=len(handles),
            deposits=len(deposit_ids),
        )
        return len(handles)

    def active_channels(self, subject_id: UUID | str) -> List[ChannelHandle]:
        return self._registry.get(subject_id)

    # ------------------------------------------------------------------
    # Proof / cancel
    # ------------------------------------------------------------------

    def capture_proof(
        self,
        order_id: UUID | str,
        image: Artifact,
        signature: Artifact,
        *,
        actor: str = "driver",
    ) -> ProofResult:
        order = self._orders.get_order(order_id)
        return self._project(
            order,
            "proof",
            OrderStatus.DELIVERED,
            lambda: self._proof.capture(order, image, signature, actor=actor),
            snapshot=lambda result: result.order,
        )

    def cancel(self, order_id: UUID | str, *, actor: str = "seller", reason: str = "") -> OrderSnapshot:
        """Cancel the order, its open deposits and every channel."""
        order = self._orders.get_order(order_id)
        cancelled = self._project(
            order,
            "cancel",
            OrderStatus.CANCELLED,
            lambda: self._orders.transition(
                order, OrderStatus.CANCELLED, actor=actor, notes=reason or "Order cancelled"
            ),
        )
        self._reconciler.cancel_for_order(order.id)
        self.close_session(order.id)
        return cancelled

    # ------------------------------------------------------------------
    # Record-store subscription
    # ------------------------------------------------------------------

    def on_order_changed(self, order: OrderSnapshot) -> None:
        """Stop the channels of an order that no longer waits for payment."""
        if order.status == OrderStatus.CANCELLED:
            self._reconciler.cancel_for_order(order.id)
        if order.is_terminal or order.status == OrderStatus.PAYMENT_OK:
            self.close_session(order.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, subject_id: UUID | str, handles: List[ChannelHandle]) -> None:
        if handles:
            self._registry.add(subject_id, handles)

    def _project(
        self,
        order: OrderSnapshot,
        operation: str,
        provisional_status: str,
        write: Callable[[], T],
        snapshot: Callable[[T], OrderSnapshot] = lambda result: result,
    ) -> T:
        self._emit(order.id, PHASE_PROVISIONAL, operation, provisional_status, order.version)
        try:
            result = write()
        except FulfillmentError as exc:
            current = self._order_repo.get_by_id(order.id) or order
            self._emit(
                order.id,
                PHASE_ROLLED_BACK,
                operation,
                str(current.status),
                current.version,
                error_code=exc.code,
            )
            raise
        confirmed = snapshot(result)
        self._emit(order.id, PHASE_CONFIRMED, operation, str(confirmed.status), confirmed.version)
        return result

    def _emit(
        self,
        order_id: UUID,
        phase: str,
        operation: str,
        status: str,
        version: int,
        error_code: Optional[str] = None,
    ) -> None:
        self._order_repo.record_events(
            [
                OrderProjected(
                    aggregate_id=order_id,
                    phase=phase,
                    operation=operation,
                    status=status,
                    version=version,
                    error_code=error_code,
                )
            ]
        )
        logger.debug(
            "fulfillment.projection",
            order_id=str(order_id),
            phase=phase,
            operation=operation,
            status=status,
        )
