"""Stock ledger: atomic per-variant reserve and release.

Both operations run inside the caller's transaction and never commit on their
own, so a stock movement lands together with the order change that caused it
or not at all.

Reservation is one conditional UPDATE. The availability check and the
decrement happen in the same statement under the row's write lock, so two
concurrent reservations for the last unit cannot both succeed and stock can
never go negative.
"""

import structlog
from protean.exceptions import ValidationError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from catalogue.models import ProductVariant
from shared.errors import ConsistencyViolation, InsufficientStock, VariantNotFound

logger = structlog.get_logger(__name__)


def _require_positive(quantity: int) -> None:
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})


class StockLedger:
    def reserve(self, session: Session, variant_id: str, quantity: int) -> None:
        """Take ``quantity`` units out of the pool or raise ``InsufficientStock``."""
        _require_positive(quantity)

        result = session.execute(
            update(ProductVariant)
            .where(
                ProductVariant.id == variant_id,
                ProductVariant.deleted_at.is_(None),
                ProductVariant.stock >= quantity,
            )
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("stock_reservation_rejected", variant_id=variant_id, quantity=quantity)
            raise InsufficientStock(variant_id, quantity)

        logger.debug("stock_reserved", variant_id=variant_id, quantity=quantity)

    def release(self, session: Session, variant_id: str, quantity: int) -> None:
        """Return ``quantity`` units to the pool.

        The ledger cannot tell whether these units were ever reserved; callers
        release exactly what they reserved, once.
        """
        _require_positive(quantity)

        result = session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=ProductVariant.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.error("stock_release_missing_variant", variant_id=variant_id, quantity=quantity)
            raise ConsistencyViolation({"variant_id": [f"Cannot release stock for unknown variant {variant_id}"]})

        logger.debug("stock_released", variant_id=variant_id, quantity=quantity)

    def available(self, session: Session, variant_id: str) -> int:
        stock = session.scalar(select(ProductVariant.stock).where(ProductVariant.id == variant_id))
        if stock is None:
            raise VariantNotFound(variant_id)
        return stock
