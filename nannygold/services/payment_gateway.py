"""
Paystack API client.

Wraps the three gateway calls billing needs (initialize a checkout, charge a
stored card authorization, verify a transaction) and converts every failure,
including timeouts, into ``GatewayError``.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, NamedTuple, Optional

import requests
from flask import current_app

from nannygold.errors import GatewayError

logger = logging.getLogger(__name__)


class GatewayResult(NamedTuple):
    status: str
    reference: Optional[str]
    transaction_id: Optional[str] = None
    authorization_code: Optional[str] = None
    amount: Optional[Decimal] = None
    message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def to_minor_units(amount) -> int:
    """Paystack expects amounts in cents."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def from_minor_units(amount) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))


def new_reference(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class PaystackGateway:
    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", timeout: float = 10.0, session=None):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        if not self.secret_key:
            raise GatewayError("PAYSTACK_SECRET_KEY is not configured.")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            logger.error("Paystack request timed out: %s %s", method, path)
            raise GatewayError("Payment gateway timed out.") from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Paystack request failed: %s", exc)
            raise GatewayError(f"Payment gateway unavailable: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(f"Invalid gateway response (HTTP {response.status_code}).") from exc

        if not response.ok or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.error("Paystack %s %s rejected: %s", method, path, message)
            raise GatewayError(message)
        return body.get("data") or {}

    @staticmethod
    def _result(data: Dict[str, Any]) -> GatewayResult:
        authorization = data.get("authorization") or {}
        transaction_id = data.get("id")
        return GatewayResult(
            status=data.get("status") or "unknown",
            reference=data.get("reference"),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            authorization_code=authorization.get("authorization_code"),
            amount=from_minor_units(data.get("amount")),
            message=data.get("gateway_response"),
            metadata=data.get("metadata") or {},
        )

    def initialize(self, email, amount, currency, reference, metadata=None) -> Dict[str, Any]:
        data = self._request(
            "POST",
            "/transaction/initialize",
            {
                "email": email,
                "amount": to_minor_units(amount),
                "currency": currency,
                "reference": reference,
                "metadata": metadata or {},
            },
        )
        return {"authorization_url": data.get("authorization_url"), "reference": data.get("reference", reference)}

    def charge_authorization(self, code, email, amount, currency, reference, metadata=None) -> GatewayResult:
        data = self._request(
            "POST",
            "/transaction/charge_authorization",
            {
                "authorization_code": code,
                "email": email,
                "amount": to_minor_units(amount),
                "currency": currency,
                "reference": reference,
                "metadata": metadata or {},
            },
        )
        result = self._result(data)
        if not result.succeeded:
            raise GatewayError(result.message or f"Charge {result.status}.", reference=result.reference)
        return result

    def verify(self, reference) -> GatewayResult:
        return self._result(self._request("GET", f"/transaction/verify/{reference}"))


def build_gateway(config) -> PaystackGateway:
    return PaystackGateway(
        secret_key=config.get("PAYSTACK_SECRET_KEY", ""),
        base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
        timeout=float(config.get("PAYSTACK_TIMEOUT", 10)),
    )


def get_payment_gateway():
    return current_app.extensions["payment_gateway"]
