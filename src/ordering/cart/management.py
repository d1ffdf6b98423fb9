"""Cart item management: add, change quantity, remove, read and empty."""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from catalogue.models import ProductVariant
from ordering.cart.cart import Cart, CartItem
from shared.errors import VariantNotFound
from shared.store import Store

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    variant_id: str
    quantity: int


@dataclass(frozen=True)
class CartView:
    cart_id: str | None
    user_id: str
    items: tuple[CartLine, ...]


def _view(cart: Cart | None, user_id: str) -> CartView:
    if cart is None:
        return CartView(cart_id=None, user_id=user_id, items=())
    return CartView(
        cart_id=cart.id,
        user_id=user_id,
        items=tuple(CartLine(variant_id=i.variant_id, quantity=i.quantity) for i in cart.items),
    )


def _get_or_create_cart(session: Session, user_id: str) -> Cart:
    cart = session.scalar(select(Cart).where(Cart.user_id == user_id))
    if cart is None:
        cart = Cart(user_id=user_id)
        session.add(cart)
        session.flush()
        logger.info("cart_created", user_id=user_id, cart_id=cart.id)
    return cart


def empty_cart(session: Session, user_id: str) -> int:
    """Delete every item in the user's cart, keeping the cart itself.

    Returns the number of items removed.
    """
    cart_id = session.scalar(select(Cart.id).where(Cart.user_id == user_id))
    if cart_id is None:
        return 0
    result = session.execute(
        delete(CartItem).where(CartItem.cart_id == cart_id).execution_options(synchronize_session=False)
    )
    return result.rowcount


class CartManager:
    def __init__(self, store: Store) -> None:
        self.store = store

    def get_cart(self, user_id: str) -> CartView:
        with self.store.transaction() as session:
            cart = session.scalar(select(Cart).where(Cart.user_id == user_id))
            return _view(cart, user_id)

    def add_item(self, user_id: str, variant_id: str, quantity: int = 1) -> CartView:
        """Add ``quantity`` units of a variant, merging with an existing line."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        with self.store.transaction() as session:
            variant = session.get(ProductVariant, variant_id)
            if variant is None or variant.deleted_at is not None:
                raise VariantNotFound(variant_id)

            cart = _get_or_create_cart(session, user_id)
            item = next((i for i in cart.items if i.variant_id == variant_id), None)
            if item is None:
                cart.items.append(CartItem(variant_id=variant_id, quantity=quantity))
            else:
                item.quantity += quantity
            session.flush()

            logger.info("cart_item_added", user_id=user_id, variant_id=variant_id, quantity=quantity)
            return _view(cart, user_id)

    def change_quantity(self, user_id: str, variant_id: str, quantity: int) -> CartView:
        """Set a line's quantity; zero removes the line."""
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        with self.store.transaction() as session:
            cart = session.scalar(select(Cart).where(Cart.user_id == user_id))
            item = next((i for i in cart.items if i.variant_id == variant_id), None) if cart else None
            if item is None:
                raise ValidationError({"variant_id": ["Item not in cart"]})

            if quantity == 0:
                cart.items.remove(item)
            else:
                item.quantity = quantity
            session.flush()

            logger.info("cart_quantity_changed", user_id=user_id, variant_id=variant_id, quantity=quantity)
            return _view(cart, user_id)

    def remove_item(self, user_id: str, variant_id: str) -> CartView:
        return self.change_quantity(user_id, variant_id, 0)
