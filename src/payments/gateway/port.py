"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
This enables swapping between FakeGateway (dev/test) and RazorpayGateway
(production) without the order engine ever seeing gateway-specific field
names.

Adapters report failures through the result objects, including transport
failures and timeouts, so callers always get a defined outcome.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IntentResult:
    """Result of opening a payment intent (a gateway-side order)."""

    success: bool
    gateway_order_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str | None = None,
    ) -> IntentResult:
        """Open a payment intent for ``amount_minor_units`` of ``currency``."""
        ...

    @abstractmethod
    def refund(
        self,
        payment_reference: str,
        amount_minor_units: int | None = None,
        speed: str = "normal",
    ) -> RefundResult:
        """Refund a captured payment, fully when no amount is given."""
        ...
