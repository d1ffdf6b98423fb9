"""Payment gateway factory.

``build_gateway()`` picks the adapter named in settings:
- FakeGateway for development and testing
- RazorpayGateway for production
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import IntentResult, PaymentGateway, RefundResult
from payments.gateway.razorpay_adapter import RazorpayGateway
from shared.config import GatewaySettings

__all__ = [
    "FakeGateway",
    "IntentResult",
    "PaymentGateway",
    "RazorpayGateway",
    "RefundResult",
    "build_gateway",
]


def build_gateway(settings: GatewaySettings) -> PaymentGateway:
    """Construct the gateway adapter configured in ``settings``."""
    if settings.provider == "fake":
        return FakeGateway()
    if settings.provider == "razorpay":
        return RazorpayGateway(
            key_id=settings.key_id,
            key_secret=settings.key_secret,
            base_url=settings.base_url,
            timeout_seconds=float(settings.timeout_seconds),
        )
    raise ValueError(f"Unknown payment gateway provider: {settings.provider}")
