"""Configurable fake payment gateway for development and testing.

This adapter simulates the payment gateway without any external calls.
Intents and refunds can be configured independently to succeed or fail,
which is what the order engine's failure paths need:

- a failed intent must abort order creation entirely
- a failed refund must leave a cancellation request untouched
"""

from uuid import uuid4

from payments.gateway.port import IntentResult, PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.intents_succeed: bool = True
        self.refunds_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []

    def configure(
        self,
        intents_succeed: bool = True,
        refunds_succeed: bool = True,
        failure_reason: str = "Gateway unavailable",
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.intents_succeed = intents_succeed
        self.refunds_succeed = refunds_succeed
        self.failure_reason = failure_reason

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str | None = None,
    ) -> IntentResult:
        self.calls.append(
            {
                "method": "create_intent",
                "amount_minor_units": amount_minor_units,
                "currency": currency,
                "receipt": receipt,
            }
        )

        if self.intents_succeed:
            return IntentResult(
                success=True,
                gateway_order_id=f"fake_order_{uuid4().hex[:14]}",
                gateway_status="created",
            )
        return IntentResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def refund(
        self,
        payment_reference: str,
        amount_minor_units: int | None = None,
        speed: str = "normal",
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "payment_reference": payment_reference,
                "amount_minor_units": amount_minor_units,
                "speed": speed,
            }
        )

        if self.refunds_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"fake_rfnd_{uuid4().hex[:14]}",
                gateway_status="processed",
            )
        return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)
