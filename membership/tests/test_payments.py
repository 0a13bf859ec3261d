from decimal import Decimal

import pytest
import requests

from membership.errors import PaymentCaptureFailed, PaymentServiceUnavailable
from membership.payments import PayPalClient


class FakeResponse:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self.payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> dict:
        return self.payload


class FakeSession:
    """Answers the token call, then replays ``responses`` for API calls."""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        if url.endswith("/v1/oauth2/token"):
            return FakeResponse(200, {"access_token": "token-123"})
        return self.responses.pop(0)


def completed_capture(value="50.00", currency="USD") -> dict:
    return {
        "id": "CAPTURED-1",
        "status": "COMPLETED",
        "purchase_units": [
            {"payments": {"captures": [{"amount": {"value": value, "currency_code": currency}}]}}
        ],
    }


def client(session) -> PayPalClient:
    return PayPalClient(client_id="cid", secret="secret", api_base="https://paypal.test/", session=session)


class TestPayPalClient:
    """Tests for the PayPal boundary."""

    def test_capture_completed(self):
        session = FakeSession(FakeResponse(201, completed_capture()))

        confirmation = client(session).capture("ORDER-1")

        assert confirmation.confirmed is True
        assert confirmation.amount == Decimal("50.00")
        assert confirmation.currency == "USD"
        assert confirmation.processor_order_id == "CAPTURED-1"
        method, url, kwargs = session.calls[-1]
        assert url == "https://paypal.test/v2/checkout/orders/ORDER-1/capture"
        assert kwargs["headers"]["Authorization"] == "Bearer token-123"

    def test_capture_reports_actual_amount(self):
        session = FakeSession(FakeResponse(201, completed_capture(value="5.00")))

        assert client(session).capture("ORDER-1").amount == Decimal("5.00")

    def test_capture_without_amount_is_unconfirmed(self):
        session = FakeSession(FakeResponse(201, {"id": "CAPTURED-1", "status": "COMPLETED"}))

        assert client(session).capture("ORDER-1").confirmed is False

    def test_capture_not_completed(self):
        session = FakeSession(FakeResponse(201, {"id": "X", "status": "PENDING"}))

        with pytest.raises(PaymentCaptureFailed):
            client(session).capture("ORDER-1")

    def test_capture_http_error(self):
        session = FakeSession(FakeResponse(422, {"name": "UNPROCESSABLE_ENTITY"}))

        with pytest.raises(PaymentCaptureFailed):
            client(session).capture("ORDER-1")

    def test_create_order_uses_entry_fee(self):
        session = FakeSession(FakeResponse(201, {"id": "ORDER-9", "status": "CREATED"}))

        order = client(session).create_order()

        assert order["id"] == "ORDER-9"
        _, _, kwargs = session.calls[-1]
        assert kwargs["json"]["intent"] == "CAPTURE"
        assert kwargs["json"]["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "50.00"}

    def test_missing_credentials(self):
        paypal = PayPalClient(client_id="", secret="", session=FakeSession())

        assert paypal.is_configured is False
        with pytest.raises(PaymentServiceUnavailable):
            paypal.capture("ORDER-1")

    def test_network_error(self):
        class BrokenSession:
            def request(self, *args, **kwargs):
                raise requests.ConnectionError("connection refused")

        with pytest.raises(PaymentServiceUnavailable):
            client(BrokenSession()).create_order()
