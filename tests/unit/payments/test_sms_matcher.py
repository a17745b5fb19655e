"""Unit tests for the SMS confirmation matcher."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from modules.payments.sms import (
    REASON_AMOUNT_MISMATCH,
    REASON_MISSING_TRANSACTION_ID,
    REASON_TOO_OLD,
    REASON_UNKNOWN_PROVIDER,
    SmsMatcher,
    SmsMessage,
    extract_amounts,
    extract_transaction_id,
    parse_amount,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
CONFIRMATION = "PAWAPAY: Depot recu. TID: MP12345 Montant 1500.00 CDF. Merci."


@pytest.fixture()
def matcher():
    return SmsMatcher(
        provider_markers=["PAWAPAY", "M-PESA"], tolerance=Decimal("0.01"), max_age_s=180
    )


def _message(body: str = CONFIRMATION, age_s: int = 40) -> SmsMessage:
    return SmsMessage(
        originating_address="PAWAPAY",
        body=body,
        received_at=NOW - timedelta(seconds=age_s),
    )


class TestMatch:
    def test_confirmation_matches(self, matcher):
        result = matcher.match(_message(), 1500, "CDF", NOW)

        assert result.matched
        assert result.transaction_id == "MP12345"
        assert result.amount == Decimal("1500.00")

    def test_amount_within_tolerance_matches(self, matcher):
        body = "PAWAPAY TID: MP12345 montant 1500.01 CDF"
        assert matcher.match(_message(body), 1500, "CDF", NOW).matched

    def test_amount_off_by_more_than_tolerance_does_not_match(self, matcher):
        body = "PAWAPAY TID: MP12345 montant 1500.02 CDF"
        result = matcher.match(_message(body), 1500, "CDF", NOW)

        assert not result.matched
        assert result.reason == REASON_AMOUNT_MISMATCH

    def test_other_currency_does_not_match(self, matcher):
        body = "PAWAPAY TID: MP12345 montant 1500.00 USD"
        result = matcher.match(_message(body), 1500, "CDF", NOW)

        assert result.reason == REASON_AMOUNT_MISMATCH

    def test_fc_is_read_as_cdf(self, matcher):
        body = "M-PESA Ref AB12CD34 vous avez recu FC 1 500"
        assert matcher.match(_message(body), 1500, "CDF", NOW).matched

    def test_message_older_than_three_minutes_does_not_match(self, matcher):
        result = matcher.match(_message(age_s=181), 1500, "CDF", NOW)

        assert not result.matched
        assert result.reason == REASON_TOO_OLD

    def test_message_at_the_age_limit_matches(self, matcher):
        assert matcher.match(_message(age_s=180), 1500, "CDF", NOW).matched

    def test_unknown_provider_does_not_match(self, matcher):
        body = "MYBANK TID: MP12345 1500.00 CDF"
        result = matcher.match(_message(body), 1500, "CDF", NOW)

        assert result.reason == REASON_UNKNOWN_PROVIDER

    def test_provider_marker_ignores_spacing_and_dashes(self, matcher):
        body = "M PESA TID: MP12345 1500 CDF"
        assert matcher.match(_message(body), 1500, "CDF", NOW).matched

    def test_missing_transaction_id_does_not_match(self, matcher):
        body = "PAWAPAY depot de 1500.00 CDF recu"
        result = matcher.match(_message(body), 1500, "CDF", NOW)

        assert result.reason == REASON_MISSING_TRANSACTION_ID


class TestParsing:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1500", Decimal("1500")),
            ("1 500", Decimal("1500")),
            ("1,500.00", Decimal("1500.00")),
            ("1.500,00", Decimal("1500.00")),
            ("1500,5", Decimal("1500.5")),
        ],
    )
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    def test_extract_amounts_reads_both_currency_positions(self):
        amounts = extract_amounts("Solde CDF 20000. Recu 1500 FC")

        assert [(a.value, a.currency) for a in amounts] == [
            (Decimal("20000"), "CDF"),
            (Decimal("1500"), "CDF"),
        ]

    @pytest.mark.parametrize(
        "body,expected",
        [
            ("TID: mp12345 ok", "MP12345"),
            ("Txn ID 8XK2-99A1.", "8XK2-99A1"),
            ("Trans ID: QW1234", "QW1234"),
            ("Ref. ABCD9876", "ABCD9876"),
        ],
    )
    def test_extract_transaction_id(self, body, expected):
        assert extract_transaction_id(body) == expected

    def test_from_payload_reads_epoch_milliseconds(self):
        message = SmsMessage.from_payload("PAWAPAY", "x", 1_772_366_400_000)
        assert message.received_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
