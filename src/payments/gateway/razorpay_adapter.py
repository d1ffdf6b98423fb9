"""Razorpay payment gateway adapter.

Talks to the Razorpay REST API with ``requests``:

- ``POST /orders`` opens a payment intent (a Razorpay "order")
- ``POST /payments/{id}/refund`` refunds a captured payment

Every call carries a bounded timeout. Transport errors, timeouts and non-2xx
responses all come back as unsuccessful results; Razorpay's response fields
stay inside this module.
"""

import requests
import structlog

from payments.gateway.port import IntentResult, PaymentGateway, RefundResult

logger = structlog.get_logger(__name__)


def _error_description(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = body.get("error") or {}
    return error.get("description") or f"HTTP {response.status_code}"


class RazorpayGateway(PaymentGateway):
    """Production Razorpay adapter."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def _post(self, path: str, payload: dict) -> tuple[dict | None, str | None]:
        """POST ``payload`` and return ``(body, None)`` or ``(None, failure_reason)``."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout_seconds)
        except requests.Timeout:
            logger.warning("gateway_timeout", path=path, timeout=self.timeout_seconds)
            return None, f"Gateway timed out after {self.timeout_seconds}s"
        except requests.RequestException as exc:
            logger.warning("gateway_unreachable", path=path, error=str(exc))
            return None, f"Gateway unreachable: {exc}"

        if not response.ok:
            reason = _error_description(response)
            logger.warning("gateway_rejected", path=path, status_code=response.status_code, reason=reason)
            return None, reason

        try:
            body = response.json()
        except ValueError:
            logger.warning("gateway_malformed_response", path=path, status_code=response.status_code)
            return None, "Malformed gateway response"

        if not isinstance(body, dict) or not body.get("id"):
            logger.warning("gateway_malformed_response", path=path, status_code=response.status_code)
            return None, "Gateway response carried no id"
        return body, None

    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str | None = None,
    ) -> IntentResult:
        payload = {"amount": amount_minor_units, "currency": currency}
        if receipt:
            payload["receipt"] = receipt

        body, failure = self._post("/orders", payload)
        if failure:
            return IntentResult(success=False, gateway_status="failed", failure_reason=failure)

        return IntentResult(
            success=True,
            gateway_order_id=body["id"],
            gateway_status=body.get("status"),
        )

    def refund(
        self,
        payment_reference: str,
        amount_minor_units: int | None = None,
        speed: str = "normal",
    ) -> RefundResult:
        payload = {"speed": speed}
        if amount_minor_units is not None:
            payload["amount"] = amount_minor_units

        body, failure = self._post(f"/payments/{payment_reference}/refund", payload)
        if failure:
            return RefundResult(success=False, gateway_status="failed", failure_reason=failure)

        return RefundResult(
            success=True,
            gateway_refund_id=body["id"],
            gateway_status=body.get("status"),
        )
