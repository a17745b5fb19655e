"""Inbound SMS matching for deposit confirmation.

A provider confirmation SMS resolves a deposit only when it carries all
of:

- a transaction id token (``TID: MP12345``, ``Txn ID ...``, ``Ref ...``),
- an amount equal to the expected one within the configured tolerance,
  in the attempt's currency (``FC`` is read as ``CDF``),
- a known provider marker (``PAWAPAY``, ``M-PESA``...),
- a timestamp no older than the configured maximum age.

Matching is pure: the caller passes ``now``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from django.conf import settings

from modules.payments.constants import CURRENCY_ALIASES

TRANSACTION_ID_PATTERN = re.compile(
    r"\b(?:TID|TXN(?:\s*ID)?|TRANS(?:ACTION)?\s*ID|REF(?:ERENCE)?|ID\s*TRANSACTION)\b"
    r"\s*[:#.]?\s*(?P<tid>[A-Z0-9][A-Z0-9.\-]{3,})",
    re.IGNORECASE,
)

_CURRENCY = r"(?:CDF|FC|USD)"
_NUMBER = r"\d{1,3}(?:[ ,.\u00a0]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?"
AMOUNT_PATTERN = re.compile(
    rf"\b(?P<pre>{_CURRENCY})\s*(?P<pre_amount>{_NUMBER})"
    rf"|(?P<post_amount>{_NUMBER})\s*(?P<post>{_CURRENCY})\b",
    re.IGNORECASE,
)

REASON_MISSING_TRANSACTION_ID = "missing_transaction_id"
REASON_AMOUNT_MISMATCH = "amount_mismatch"
REASON_UNKNOWN_PROVIDER = "unknown_provider"
REASON_TOO_OLD = "too_old"


@dataclass(frozen=True)
class SmsMessage:
    originating_address: str
    body: str
    received_at: datetime

    @classmethod
    def from_payload(cls, originating_address: str, body: str, timestamp_ms: int) -> SmsMessage:
        received_at = datetime.fromtimestamp(timestamp_ms / 1000, tz=dt_timezone.utc)
        return cls(originating_address=originating_address, body=body, received_at=received_at)


@dataclass(frozen=True)
class SmsAmount:
    value: Decimal
    currency: str


@dataclass(frozen=True)
class SmsMatch:
    matched: bool
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None


def parse_amount(raw: str) -> Optional[Decimal]:
    """Read ``1 500``, ``1,500.00``, ``1.500,00`` or ``1500,5`` as a Decimal."""
    text = raw.replace(" ", "").replace("\u00a0", "")
    if "," in text and "." in text:
        decimal_sep = "," if text.rfind(",") > text.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        text = text.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in text or "." in text:
        sep = "," if "," in text else "."
        head, _, tail = text.rpartition(sep)
        if text.count(sep) == 1 and len(tail) in (1, 2):
            text = f"{head}.{tail}"
        else:
            text = text.replace(sep, "")
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def extract_amounts(body: str) -> List[SmsAmount]:
    amounts = []
    for found in AMOUNT_PATTERN.finditer(body):
        raw = found.group("pre_amount") or found.group("post_amount")
        currency = (found.group("pre") or found.group("post")).upper()
        value = parse_amount(raw)
        if value is not None:
            amounts.append(SmsAmount(value=value, currency=CURRENCY_ALIASES[currency]))
    return amounts


def extract_transaction_id(body: str) -> Optional[str]:
    found = TRANSACTION_ID_PATTERN.search(body)
    return found.group("tid").rstrip(".").upper() if found else None


def _compact(text: str) -> str:
    return re.sub(r"[\s\-_]", "", text.upper())


class SmsMatcher:
    """Decides whether a message confirms a deposit of a given amount."""

    def __init__(
        self,
        provider_markers: Optional[Sequence[str]] = None,
        tolerance: Optional[Decimal] = None,
        max_age_s: Optional[int] = None,
    ) -> None:
        conf = settings.FULFILLMENT
        markers: Iterable[str] = (
            provider_markers if provider_markers is not None else conf["SMS_PROVIDER_MARKERS"]
        )
        self.provider_markers = [_compact(marker) for marker in markers if marker.strip()]
        self.tolerance = (
            tolerance if tolerance is not None else Decimal(conf["SMS_AMOUNT_TOLERANCE"])
        )
        self.max_age = timedelta(
            seconds=max_age_s if max_age_s is not None else conf["SMS_MAX_AGE_S"]
        )

    def match(
        self,
        message: SmsMessage,
        expected_amount: int | Decimal,
        currency: str,
        now: datetime,
    ) -> SmsMatch:
        if now - message.received_at > self.max_age:
            return SmsMatch(matched=False, reason=REASON_TOO_OLD)

        compact_body = _compact(message.body)
        if not any(marker in compact_body for marker in self.provider_markers):
            return SmsMatch(matched=False, reason=REASON_UNKNOWN_PROVIDER)

        transaction_id = extract_transaction_id(message.body)
        if transaction_id is None:
            return SmsMatch(matched=False, reason=REASON_MISSING_TRANSACTION_ID)

        expected = Decimal(expected_amount)
        wanted_currency = CURRENCY_ALIASES.get(currency.upper(), currency.upper())
        for amount in extract_amounts(message.body):
            if (
                amount.currency == wanted_currency
                and abs(amount.value - expected) <= self.tolerance
            ):
                return SmsMatch(matched=True, transaction_id=transaction_id, amount=amount.value)
        return SmsMatch(
            matched=False, reason=REASON_AMOUNT_MISMATCH, transaction_id=transaction_id
        )
