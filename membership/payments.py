from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

import requests

from . import config
from .errors import PaymentCaptureFailed, PaymentServiceUnavailable
from .logger import get_logger
from .models import PaymentConfirmation

logger = get_logger(__name__)


class PaymentGateway(Protocol):
    client_id: str

    @property
    def is_configured(self) -> bool: ...

    def create_order(self) -> dict: ...

    def capture(self, order_id: str) -> PaymentConfirmation: ...


class PayPalClient:
    """Thin PayPal Orders v2 client: create an order, capture it."""

    def __init__(
        self,
        client_id: str = config.PAYPAL_CLIENT_ID,
        secret: str = config.PAYPAL_SECRET,
        api_base: str = config.PAYPAL_API,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ):
        self.client_id = client_id
        self.secret = secret
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.secret)

    def access_token(self) -> str:
        if not self.is_configured:
            logger.error("PayPal credentials missing. Set PAYPAL_CLIENT_ID and PAYPAL_SECRET.")
            raise PaymentServiceUnavailable()

        response = self._request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.secret),
            data={"grant_type": "client_credentials"},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = response.json().get("access_token") if response.ok else None
        if not token:
            logger.error(f"PayPal token request failed: HTTP {response.status_code}")
            raise PaymentServiceUnavailable()
        return token

    def create_order(self) -> dict:
        token = self.access_token()
        response = self._request(
            "POST",
            "/v2/checkout/orders",
            headers=self._bearer(token),
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {"amount": {"currency_code": config.CURRENCY, "value": str(config.ENTRY_FEE)}}
                ],
            },
        )
        data = response.json()
        if not response.ok:
            logger.error(f"PayPal order creation failed: HTTP {response.status_code} {data}")
            raise PaymentServiceUnavailable("Could not create payment order")
        return data

    def capture(self, order_id: str) -> PaymentConfirmation:
        token = self.access_token()
        response = self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            headers=self._bearer(token),
        )
        data = response.json()

        if not response.ok or data.get("status") != "COMPLETED":
            logger.error(f"Payment capture failed for order {order_id}: {data}")
            raise PaymentCaptureFailed()

        amount = self._captured_amount(data)
        if amount is None:
            logger.error(f"Capture for order {order_id} carries no amount")
            return PaymentConfirmation(
                confirmed=False, amount=Decimal("0"), currency="", processor_order_id=data.get("id", order_id)
            )

        value, currency = amount
        return PaymentConfirmation(
            confirmed=True, amount=value, currency=currency, processor_order_id=data.get("id", order_id)
        )

    @staticmethod
    def _captured_amount(data: dict) -> Optional[tuple[Decimal, str]]:
        try:
            amount = data["purchase_units"][0]["payments"]["captures"][0]["amount"]
            return Decimal(amount["value"]), amount["currency_code"]
        except (KeyError, IndexError, TypeError, InvalidOperation):
            return None

    @staticmethod
    def _bearer(token: str) -> dict:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, f"{self.api_base}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"PayPal request {method} {path} failed: {e}")
            raise PaymentServiceUnavailable() from e
