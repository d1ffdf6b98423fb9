"""Order lifecycle: creation, payment verification, and cancellation.

Every state-changing operation runs in a single store transaction:

- create_order: price the cart, open a gateway intent, then reserve stock for
  every line and insert the order atomically. Any shortfall rolls back all
  reservations and no order row is written.
- verify_payment: lock the order by its gateway reference and settle a DUE
  payment exactly once. A forged signature fails the payment and returns the
  reserved stock.
- request_cancellation / resolve_cancellation: the owner asks, an ADMIN or
  MASTER decides. Approval refunds a captured payment before the order is
  cancelled; a failed refund leaves the request untouched.

Order rows are loaded ``FOR UPDATE`` before any precondition is checked, so
two concurrent callers cannot both act on the same starting state.
"""

import math
from datetime import datetime
from uuid import uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from identity.collaborators import AddressBook, Identity
from inventory.stock.ledger import StockLedger
from ordering.cart.management import empty_cart
from ordering.cart.snapshot import CartSnapshotReader, EmptyCart, PriceableCart
from ordering.order.filters import ById, OrderFilter, clauses, scope_for
from ordering.order.order import (
    CancellationAction,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
)
from ordering.order.views import OrderPage, OrderView, PlacedOrder
from payments.gateway.port import PaymentGateway
from payments.signature import verify_signature
from pricing.resolver import CartTotals, price_cart, round_money, to_minor_units
from shared.clock import utcnow
from shared.config import Settings
from shared.errors import (
    AuthorizationError,
    CartIsEmpty,
    ConsistencyViolation,
    ExternalGatewayError,
    InsufficientStock,
    InvalidTransition,
    ItemsUnavailable,
    OrderNotFound,
    ValidationError,
)
from shared.store import Store

logger = structlog.get_logger(__name__)


def parse_cancellation_action(action: CancellationAction | str) -> CancellationAction:
    if isinstance(action, CancellationAction):
        return action
    try:
        return CancellationAction(str(action).lower())
    except ValueError:
        raise ValidationError(
            {"action": [f"Unknown cancellation action: {action}. Use 'confirm' or 'reject'"]}
        ) from None


class OrderLifecycleManager:
    def __init__(
        self,
        store: Store,
        gateway: PaymentGateway,
        settings: Settings,
        ledger: StockLedger | None = None,
        reader: CartSnapshotReader | None = None,
        addresses: AddressBook | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.ledger = ledger or StockLedger()
        self.reader = reader or CartSnapshotReader()
        self.addresses = addresses or AddressBook(store)

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def _load_priceable(self, identity: Identity, as_of: datetime | None) -> PriceableCart:
        with self.store.transaction() as session:
            snapshot = self.reader.load_priceable_cart(session, identity.id, as_of)

        if isinstance(snapshot, EmptyCart):
            raise CartIsEmpty(identity.id)
        if snapshot.unavailable:
            raise ItemsUnavailable(snapshot.unavailable)
        return snapshot

    def _price(self, snapshot: PriceableCart) -> CartTotals:
        return price_cart(
            snapshot.lines,
            gst_rate=self.settings.gst_rate,
            shipping_charge=self.settings.shipping_charge,
            as_of=snapshot.as_of,
        )

    def preview_totals(self, identity: Identity, as_of: datetime | None = None) -> CartTotals:
        """Price the caller's cart without touching stock or the gateway."""
        return self._price(self._load_priceable(identity, as_of))

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create_order(
        self,
        identity: Identity,
        shipping_address_id: str,
        billing_address_id: str,
        as_of: datetime | None = None,
    ) -> PlacedOrder:
        for field, address_id in (
            ("shipping_address_id", shipping_address_id),
            ("billing_address_id", billing_address_id),
        ):
            if not address_id or not self.addresses.is_owned_by(address_id, identity.id):
                raise ValidationError({field: ["Address not found for this user"]})

        snapshot = self._load_priceable(identity, as_of)
        totals = self._price(snapshot)

        order_id = str(uuid4())
        amount = to_minor_units(totals.total_amount)
        currency = self.settings.currency

        intent = self.gateway.create_intent(amount, currency, receipt=order_id)
        if not intent.success:
            logger.warning(
                "payment_intent_failed",
                user_id=identity.id,
                amount_minor_units=amount,
                reason=intent.failure_reason,
            )
            raise ExternalGatewayError({"gateway": [intent.failure_reason or "Payment intent could not be created"]})

        try:
            with self.store.transaction() as session:
                for line in totals.item_subtotals:
                    self.ledger.reserve(session, line.variant_id, line.quantity)

                order = Order(
                    id=order_id,
                    user_id=identity.id,
                    shipping_address_id=shipping_address_id,
                    billing_address_id=billing_address_id,
                    item_subtotal=totals.total_item_subtotal,
                    tax_amount=totals.tax_amount,
                    shipping_charge=totals.shipping_charge,
                    total_amount=totals.total_amount,
                    currency=currency,
                    status=OrderStatus.PENDING.value,
                    payment=PaymentStatus.DUE.value,
                    gateway_order_id=intent.gateway_order_id,
                    stock_held=True,
                    items=[
                        OrderItem(
                            position=position,
                            variant_id=line.variant_id,
                            sku=line.sku,
                            product_name=line.product_name,
                            quantity=line.quantity,
                            list_price=round_money(line.unit_price),
                            discount_amount=round_money(line.discount_amount),
                            unit_price=round_money(line.effective_price),
                            line_subtotal=line.line_subtotal,
                        )
                        for position, line in enumerate(totals.item_subtotals)
                    ],
                )
                session.add(order)
                session.flush()
                view = OrderView.from_model(order)
        except InsufficientStock as exc:
            # The intent stays open on the gateway side and expires unpaid
            logger.info(
                "order_creation_rejected",
                user_id=identity.id,
                variant_id=exc.variant_id,
                requested=exc.requested,
                gateway_order_id=intent.gateway_order_id,
            )
            raise

        logger.info(
            "order_created",
            order_id=view.id,
            user_id=identity.id,
            total_amount=str(view.total_amount),
            items=len(view.items),
            gateway_order_id=intent.gateway_order_id,
        )
        return PlacedOrder(
            order=view,
            gateway_order_id=intent.gateway_order_id,
            amount_minor_units=amount,
            currency=currency,
        )

    # -------------------------------------------------------------------
    # Payment verification
    # -------------------------------------------------------------------
    def verify_payment(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Settle a DUE payment from a gateway callback.

        Returns whether the signature verified. Callbacks for orders whose
        payment is no longer DUE change nothing.
        """
        missing = {
            name: ["This field is required"]
            for name, value in (
                ("gateway_order_id", gateway_order_id),
                ("gateway_payment_id", gateway_payment_id),
                ("signature", signature),
            )
            if not value
        }
        if missing:
            raise ValidationError(missing)

        verified = verify_signature(
            self.settings.gateway.signing_secret,
            gateway_order_id,
            gateway_payment_id,
            signature,
        )

        with self.store.transaction() as session:
            order = self._locked_order(session, Order.gateway_order_id == gateway_order_id)
            if order is None:
                raise OrderNotFound(gateway_order_id)

            if order.payment_status != PaymentStatus.DUE:
                if verified and order.order_status == OrderStatus.CANCELLED:
                    logger.warning(
                        "payment_after_cancellation",
                        order_id=order.id,
                        gateway_payment_id=gateway_payment_id,
                    )
                else:
                    logger.info(
                        "payment_callback_ignored",
                        order_id=order.id,
                        payment=order.payment,
                        verified=verified,
                    )
                return verified

            if verified:
                order.record_payment_success(gateway_payment_id)
                removed = empty_cart(session, order.user_id)
                logger.info("payment_verified", order_id=order.id, cart_items_removed=removed)
            else:
                order.record_payment_failure()
                self._release_stock(session, order)
                logger.warning(
                    "payment_signature_mismatch",
                    order_id=order.id,
                    gateway_payment_id=gateway_payment_id,
                )

        return verified

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def request_cancellation(self, order_id: str, identity: Identity) -> OrderView:
        with self.store.transaction() as session:
            order = self._locked_order(session, Order.id == order_id)
            if order is None:
                raise OrderNotFound(order_id)
            if order.user_id != identity.id:
                raise AuthorizationError({"order": ["Only the customer who placed the order can cancel it"]})

            order.request_cancellation()
            view = OrderView.from_model(order)

        logger.info("cancellation_requested", order_id=order_id, user_id=identity.id)
        return view

    def resolve_cancellation(
        self,
        order_id: str,
        action: CancellationAction | str,
        identity: Identity,
    ) -> OrderView:
        if not identity.is_privileged:
            raise AuthorizationError({"role": ["Only ADMIN or MASTER users can resolve cancellations"]})
        action = parse_cancellation_action(action)

        with self.store.transaction() as session:
            order = self._locked_order(session, Order.id == order_id)
            if order is None:
                raise OrderNotFound(order_id)
            if order.order_status != OrderStatus.PENDING_CANCELLATION:
                raise InvalidTransition({"status": [f"Order {order_id} has no pending cancellation request"]})

            if action is CancellationAction.REJECT:
                order.reject_cancellation()
            else:
                if order.payment_status == PaymentStatus.SUCCESSFUL:
                    self._refund(order)
                order.confirm_cancellation()
                if order.stock_held:
                    self._release_stock(session, order)
            view = OrderView.from_model(order)

        logger.info(
            "cancellation_resolved",
            order_id=order_id,
            action=action.value,
            resolved_by=identity.id,
            status=view.status.value,
            payment=view.payment.value,
        )
        return view

    def _refund(self, order: Order) -> None:
        amount = to_minor_units(round_money(order.total_amount))
        result = self.gateway.refund(
            order.gateway_payment_id,
            amount_minor_units=amount,
            speed=self.settings.gateway.refund_speed,
        )
        if not result.success:
            logger.warning("refund_failed", order_id=order.id, reason=result.failure_reason)
            raise ExternalGatewayError({"refund": [result.failure_reason or "Refund could not be issued"]})
        logger.info(
            "refund_issued",
            order_id=order.id,
            amount_minor_units=amount,
            gateway_refund_id=result.gateway_refund_id,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_order(self, identity: Identity, order_id: str) -> OrderView:
        where = clauses(scope_for(identity, (ById(order_id),)))
        with self.store.transaction() as session:
            order = session.scalar(select(Order).where(*where).options(selectinload(Order.items)))
            if order is None:
                raise OrderNotFound(order_id)
            return OrderView.from_model(order)

    def list_orders(
        self,
        identity: Identity,
        filters: tuple[OrderFilter, ...] = (),
        page: int = 1,
        limit: int = 5,
    ) -> OrderPage:
        """Newest orders first, scoped to the caller unless privileged."""
        errors = {}
        if page < 1:
            errors["page"] = ["Page must be at least 1"]
        if limit < 1:
            errors["limit"] = ["Limit must be at least 1"]
        if errors:
            raise ValidationError(errors)

        where = clauses(scope_for(identity, filters))
        with self.store.transaction() as session:
            total_count = session.scalar(select(func.count()).select_from(Order).where(*where))
            rows = session.scalars(
                select(Order)
                .where(*where)
                .options(selectinload(Order.items))
                .order_by(Order.created_at.desc(), Order.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            orders = tuple(OrderView.from_model(order) for order in rows)

        return OrderPage(
            orders=orders,
            current_page=page,
            total_pages=math.ceil(total_count / limit),
            total_count=total_count,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _locked_order(session: Session, *criteria) -> Order | None:
        return session.scalar(select(Order).where(*criteria).with_for_update())

    def _release_stock(self, session: Session, order: Order) -> None:
        if not order.stock_held:
            logger.error("stock_release_without_hold", order_id=order.id)
            raise ConsistencyViolation({"order": [f"Order {order.id} holds no reserved stock"]})

        for item in order.items:
            self.ledger.release(session, item.variant_id, item.quantity)
        order.stock_held = False
        order.updated_at = utcnow()
        logger.info("stock_released", order_id=order.id, lines=len(order.items))
