"""Mobile-money payment gateway client.

Two operations:

- ``POST {base}/initiate-deposit`` with ``{depositId, phone, amount,
  currency, recipientPhone}``, answered by ``{success, message}``.
- ``GET {base}/check-payment/{depositId}``, answered by ``{status,
  amount, currency}``.

Initiation is retried on network errors and 5xx answers with
exponential backoff. Status checks are not retried here: the next poll
tick is the retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

import requests
import structlog
from django.conf import settings
from pydantic import BaseModel, ConfigDict, ValidationError

from modules.payments.constants import (
    GATEWAY_FAILURE_ALIASES,
    GATEWAY_SUCCESS_ALIASES,
    AttemptStatus,
)
from modules.payments.exceptions import DepositInitiationFailed

logger = structlog.get_logger(__name__)


class GatewayError(Exception):
    """A status check could not be completed (network, 5xx, bad payload)."""


@dataclass(frozen=True)
class DepositRequest:
    deposit_id: str
    phone: str
    amount: int
    currency: str
    recipient_phone: str = ""

    def to_json(self) -> dict:
        return {
            "depositId": self.deposit_id,
            "phone": self.phone,
            "amount": self.amount,
            "currency": self.currency,
            "recipientPhone": self.recipient_phone,
        }


class InitiateDepositResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    success: bool
    message: str = ""


class PaymentStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    status: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    transactionId: Optional[str] = None


@dataclass(frozen=True)
class GatewayStatus:
    """Normalized answer of a status check."""

    status: str
    raw_status: str
    amount: Optional[Decimal]
    currency: Optional[str]
    transaction_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != AttemptStatus.PENDING


def normalize_status(raw: str) -> str:
    """Map the gateway's spellings onto PENDING / SUCCESS / FAILURE."""
    value = (raw or "").strip().upper()
    if value in GATEWAY_SUCCESS_ALIASES:
        return AttemptStatus.SUCCESS
    if value in GATEWAY_FAILURE_ALIASES:
        return AttemptStatus.FAILURE
    return AttemptStatus.PENDING


class PaymentGatewayClient:
    """Client for the deposit gateway.

    ``sleep`` is injectable so the backoff can be observed in tests
    without waiting.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_s: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        conf = settings.FULFILLMENT
        self.base_url = (base_url or conf["PAYMENT_GATEWAY_URL"]).rstrip("/")
        self.timeout = timeout if timeout is not None else conf["PAYMENT_GATEWAY_TIMEOUT_S"]
        self.max_attempts = max_attempts or conf["INITIATION_MAX_ATTEMPTS"]
        self.backoff_s = backoff_s if backoff_s is not None else conf["INITIATION_BACKOFF_S"]
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._sleep = sleep

    def initiate_deposit(self, request: DepositRequest) -> InitiateDepositResponse:
        """Ask the gateway to collect the deposit.

        Raises:
            DepositInitiationFailed: unreachable after every attempt, a
                non-retryable HTTP error, or ``success: false``.
        """
        url = f"{self.base_url}/initiate-deposit"
        log = logger.bind(deposit_id=request.deposit_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self.session.post(url, json=request.to_json(), timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                log.warning("payment.initiation_network_error", attempt=attempt, error=str(exc))
                if attempt == self.max_attempts:
                    raise DepositInitiationFailed(
                        "Payment gateway unreachable.", deposit_id=request.deposit_id
                    ) from exc
                self._backoff(attempt)
                continue

            if resp.status_code >= 500:
                log.warning(
                    "payment.initiation_server_error", attempt=attempt, status=resp.status_code
                )
                if attempt == self.max_attempts:
                    raise DepositInitiationFailed(
                        f"Payment gateway answered {resp.status_code}.",
                        deposit_id=request.deposit_id,
                    )
                self._backoff(attempt)
                continue

            try:
                resp.raise_for_status()
                body = InitiateDepositResponse.model_validate(resp.json())
            except (requests.HTTPError, ValueError, ValidationError) as exc:
                log.warning("payment.initiation_rejected", status=resp.status_code)
                raise DepositInitiationFailed(
                    f"Payment gateway rejected the deposit ({resp.status_code}).",
                    deposit_id=request.deposit_id,
                ) from exc

            if not body.success:
                log.warning("payment.initiation_refused", message=body.message)
                raise DepositInitiationFailed(
                    body.message or "Payment gateway refused the deposit.",
                    deposit_id=request.deposit_id,
                )
            log.info("payment.initiated", attempt=attempt)
            return body

        raise DepositInitiationFailed(
            "Payment gateway unreachable.", deposit_id=request.deposit_id
        )

    def check_payment(self, deposit_id: str) -> GatewayStatus:
        """Single status check; raises ``GatewayError`` on any failure."""
        url = f"{self.base_url}/check-payment/{deposit_id}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            body = PaymentStatusResponse.model_validate(resp.json())
        except (requests.RequestException, ValueError, ValidationError) as exc:
            raise GatewayError(f"Status check failed for {deposit_id}: {exc}") from exc

        return GatewayStatus(
            status=normalize_status(body.status),
            raw_status=body.status,
            amount=body.amount,
            currency=body.currency.upper() if body.currency else None,
            transaction_id=body.transactionId,
        )

    def _backoff(self, attempt: int) -> None:
        self._sleep(self.backoff_s * (2 ** (attempt - 1)))
