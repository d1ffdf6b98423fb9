"""Payment callback signatures.

The gateway signs ``"<gateway_order_id>|<gateway_payment_id>"`` with
HMAC-SHA256 using the shared secret and sends the hex digest along with the
callback.
"""

import hashlib
import hmac


def compute_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    """Constant-time comparison of ``signature`` against the expected digest."""
    expected = compute_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode(), (signature or "").encode())
