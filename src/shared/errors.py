"""Error taxonomy for the order and inventory engine.

Every error carries a ``messages`` dict (field -> list of messages), the same
shape ``ProteanExceptionWithMessage`` stores, plus a stable ``kind`` string that
the HTTP layer surfaces to callers.
"""

from protean.exceptions import (
    InvalidOperationError,
    ObjectNotFoundError,
    ProteanExceptionWithMessage,
    ValidationError,
)

__all__ = [
    "AuthenticationRequired",
    "AuthorizationError",
    "CartIsEmpty",
    "ConsistencyViolation",
    "ExternalGatewayError",
    "InsufficientStock",
    "InvalidTransition",
    "ItemsUnavailable",
    "OrderNotFound",
    "PreconditionError",
    "ValidationError",
    "VariantNotFound",
]


class PreconditionError(ProteanExceptionWithMessage, InvalidOperationError):
    """The request is well-formed but the current state does not allow it."""

    kind = "precondition"


class CartIsEmpty(PreconditionError):
    kind = "empty_cart"

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__({"cart": ["Cart is empty."]})


class ItemsUnavailable(PreconditionError):
    kind = "items_unavailable"

    def __init__(self, variant_ids):
        self.variant_ids = list(variant_ids)
        super().__init__({"cart": [f"Items no longer available: {', '.join(self.variant_ids)}"]})


class InsufficientStock(PreconditionError):
    kind = "insufficient_stock"

    def __init__(self, variant_id, requested):
        self.variant_id = variant_id
        self.requested = requested
        super().__init__({"stock": [f"Insufficient stock for variant {variant_id}: {requested} requested"]})


class InvalidTransition(PreconditionError):
    kind = "invalid_transition"


class AuthorizationError(ProteanExceptionWithMessage):
    """The caller is not allowed to act on the resource."""

    kind = "authorization"


class AuthenticationRequired(AuthorizationError):
    """No acting user could be resolved for the request."""

    kind = "unauthenticated"


class OrderNotFound(ProteanExceptionWithMessage, ObjectNotFoundError):
    kind = "not_found"

    def __init__(self, reference):
        self.reference = reference
        super().__init__({"order": [f"Order {reference} not found"]})


class VariantNotFound(ProteanExceptionWithMessage, ObjectNotFoundError):
    kind = "not_found"

    def __init__(self, variant_id):
        self.variant_id = variant_id
        super().__init__({"variant_id": [f"Variant {variant_id} not found"]})


class ExternalGatewayError(ProteanExceptionWithMessage):
    """The payment gateway failed, timed out or rejected the call."""

    kind = "gateway_error"


class ConsistencyViolation(ProteanExceptionWithMessage):
    """A should-never-happen ledger or state inconsistency."""

    kind = "consistency_violation"
