"""Unit tests for the payment gateway client (HTTP mocked)."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from modules.payments.constants import AttemptStatus
from modules.payments.exceptions import DepositInitiationFailed
from modules.payments.gateway import (
    DepositRequest,
    GatewayError,
    PaymentGatewayClient,
    normalize_status,
)

pytestmark = pytest.mark.unit

REQUEST = DepositRequest(
    deposit_id="dep-1",
    phone="+243990000001",
    amount=1500,
    currency="CDF",
    recipient_phone="+243810000001",
)


def _response(status_code: int = 200, body=None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.json.return_value = body if body is not None else {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code}")
    return resp


@pytest.fixture()
def session():
    mock = MagicMock(spec=requests.Session)
    mock.headers = {}
    return mock


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def client(session, sleeps):
    return PaymentGatewayClient(
        base_url="http://gateway.test/",
        timeout=5,
        max_attempts=3,
        backoff_s=1.0,
        session=session,
        sleep=sleeps.append,
    )


class TestInitiateDeposit:
    def test_posts_the_deposit_payload(self, client, session):
        session.post.return_value = _response(body={"success": True, "message": "queued"})

        result = client.initiate_deposit(REQUEST)

        assert result.success
        session.post.assert_called_once_with(
            "http://gateway.test/initiate-deposit",
            json={
                "depositId": "dep-1",
                "phone": "+243990000001",
                "amount": 1500,
                "currency": "CDF",
                "recipientPhone": "+243810000001",
            },
            timeout=5,
        )

    def test_network_errors_are_retried_with_exponential_backoff(self, client, session, sleeps):
        session.post.side_effect = [
            requests.ConnectionError("down"),
            requests.Timeout("slow"),
            _response(body={"success": True}),
        ]

        assert client.initiate_deposit(REQUEST).success
        assert session.post.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_server_errors_are_retried(self, client, session, sleeps):
        session.post.side_effect = [_response(503), _response(body={"success": True})]

        assert client.initiate_deposit(REQUEST).success
        assert sleeps == [1.0]

    def test_unreachable_after_every_attempt(self, client, session, sleeps):
        session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(DepositInitiationFailed) as exc_info:
            client.initiate_deposit(REQUEST)

        assert session.post.call_count == 3
        assert sleeps == [1.0, 2.0]
        assert exc_info.value.retryable is True

    def test_client_error_is_not_retried(self, client, session, sleeps):
        session.post.return_value = _response(400, {"success": False})

        with pytest.raises(DepositInitiationFailed):
            client.initiate_deposit(REQUEST)

        assert session.post.call_count == 1
        assert sleeps == []

    def test_refusal_raises_with_gateway_message(self, client, session):
        session.post.return_value = _response(body={"success": False, "message": "Solde insuffisant"})

        with pytest.raises(DepositInitiationFailed, match="Solde insuffisant"):
            client.initiate_deposit(REQUEST)


class TestCheckPayment:
    def test_success_is_normalized(self, client, session):
        session.get.return_value = _response(
            body={"status": "SUCCESSFUL", "amount": "1500", "currency": "cdf"}
        )

        result = client.check_payment("dep-1")

        session.get.assert_called_once_with("http://gateway.test/check-payment/dep-1", timeout=5)
        assert result.status == AttemptStatus.SUCCESS
        assert result.raw_status == "SUCCESSFUL"
        assert result.amount == Decimal("1500")
        assert result.currency == "CDF"
        assert result.is_terminal

    def test_http_error_raises_gateway_error(self, client, session):
        session.get.return_value = _response(502)

        with pytest.raises(GatewayError):
            client.check_payment("dep-1")

    def test_network_error_raises_gateway_error(self, client, session):
        session.get.side_effect = requests.ConnectionError("down")

        with pytest.raises(GatewayError):
            client.check_payment("dep-1")

    def test_payload_without_status_raises_gateway_error(self, client, session):
        session.get.return_value = _response(body={"amount": 1500})

        with pytest.raises(GatewayError):
            client.check_payment("dep-1")


class TestNormalizeStatus:
    @pytest.mark.parametrize("raw", ["SUCCESS", "successful", " Successful "])
    def test_success_aliases(self, raw):
        assert normalize_status(raw) == AttemptStatus.SUCCESS

    @pytest.mark.parametrize(
        "raw", ["FAILED", "FAILURE", "CANCELLED", "REJECTED", "EXPIRED", "ERROR"]
    )
    def test_failure_aliases(self, raw):
        assert normalize_status(raw) == AttemptStatus.FAILURE

    @pytest.mark.parametrize("raw", ["PENDING", "ACCEPTED", "SUBMITTED", ""])
    def test_anything_else_is_pending(self, raw):
        assert normalize_status(raw) == AttemptStatus.PENDING
