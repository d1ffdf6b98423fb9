"""Loads a user's cart in the shape the pricing resolver needs."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from catalogue.models import Category, Product, ProductVariant
from ordering.cart.cart import Cart, CartItem
from pricing.resolver import DiscountTerms, PricingLine
from shared.clock import as_utc, utcnow


@dataclass(frozen=True)
class PriceableCart:
    cart_id: str
    user_id: str
    as_of: datetime
    lines: tuple[PricingLine, ...]
    unavailable: tuple[str, ...] = ()


@dataclass(frozen=True)
class EmptyCart:
    """The user has no cart yet, or the cart holds no items."""

    user_id: str


def _terms(discounts) -> tuple[DiscountTerms, ...]:
    return tuple(
        DiscountTerms(
            percentage=d.percentage,
            type=d.type,
            valid_from=as_utc(d.valid_from),
            valid_to=as_utc(d.valid_to),
        )
        for d in discounts
        if d.deleted_at is None
    )


class CartSnapshotReader:
    def load_priceable_cart(
        self,
        session: Session,
        user_id: str,
        as_of: datetime | None = None,
    ) -> PriceableCart | EmptyCart:
        """Load the cart with variant, product, category and discount data.

        Lines whose variant or product has been soft-deleted are listed in
        ``unavailable`` instead of being priced.
        """
        as_of = as_utc(as_of) if as_of else utcnow()

        cart = session.scalar(
            select(Cart)
            .where(Cart.user_id == user_id)
            .options(
                selectinload(Cart.items)
                .selectinload(CartItem.variant)
                .selectinload(ProductVariant.product)
                .selectinload(Product.discounts),
                selectinload(Cart.items)
                .selectinload(CartItem.variant)
                .selectinload(ProductVariant.product)
                .selectinload(Product.category)
                .selectinload(Category.discounts),
            )
        )
        if cart is None or not cart.items:
            return EmptyCart(user_id=user_id)

        lines = []
        unavailable = []
        for item in cart.items:
            variant = item.variant
            product = variant.product
            if variant.deleted_at is not None or product.deleted_at is not None:
                unavailable.append(variant.id)
                continue

            lines.append(
                PricingLine(
                    variant_id=variant.id,
                    sku=variant.sku,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price=variant.price,
                    product_discounts=_terms(product.discounts),
                    category_discounts=_terms(product.category.discounts),
                )
            )

        return PriceableCart(
            cart_id=cart.id,
            user_id=user_id,
            as_of=as_of,
            lines=tuple(lines),
            unavailable=tuple(unavailable),
        )
