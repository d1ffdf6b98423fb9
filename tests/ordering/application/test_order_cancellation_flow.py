import pytest
from protean.exceptions import ValidationError

from identity.models import Role
from ordering.order.order import CancellationAction, OrderStatus, PaymentStatus
from shared.errors import AuthorizationError, ExternalGatewayError, InvalidTransition, OrderNotFound


@pytest.fixture
def variant_id(seed):
    return seed.variant(price="1000.00", stock=10)


@pytest.fixture
def placed(manager, carts, shopper, variant_id):
    carts.add_item(shopper.id, variant_id, 4)
    return manager.create_order(shopper.identity, shopper.address_id, shopper.address_id)


@pytest.fixture
def paid(manager, placed, sign):
    gateway_order_id = placed.gateway_order_id
    manager.verify_payment(gateway_order_id, "pay_777", sign(gateway_order_id, "pay_777"))
    return placed


class TestRequestCancellation:
    def test_owner_can_request(self, manager, placed, shopper):
        order = manager.request_cancellation(placed.order.id, shopper.identity)

        assert order.status == OrderStatus.PENDING_CANCELLATION

    def test_other_user_cannot_request(self, manager, placed, seed):
        stranger = seed.user()

        with pytest.raises(AuthorizationError):
            manager.request_cancellation(placed.order.id, stranger)

    def test_admin_cannot_request_on_behalf_of_owner(self, manager, placed, admin):
        with pytest.raises(AuthorizationError):
            manager.request_cancellation(placed.order.id, admin)

    def test_duplicate_request_is_rejected(self, manager, placed, shopper):
        manager.request_cancellation(placed.order.id, shopper.identity)

        with pytest.raises(InvalidTransition):
            manager.request_cancellation(placed.order.id, shopper.identity)

    def test_ordered_order_can_be_cancelled(self, manager, store, placed, shopper):
        from fulfillment.export import FulfillmentExporter

        FulfillmentExporter(store).export_pending()

        order = manager.request_cancellation(placed.order.id, shopper.identity)
        assert order.status == OrderStatus.PENDING_CANCELLATION

    def test_unknown_order(self, manager, shopper):
        with pytest.raises(OrderNotFound):
            manager.request_cancellation("missing-order", shopper.identity)


class TestResolveCancellation:
    def test_confirm_refunds_and_restores_stock(self, manager, paid, shopper, admin, seed, variant_id, gateway):
        assert seed.stock(variant_id) == 6
        manager.request_cancellation(paid.order.id, shopper.identity)

        order = manager.resolve_cancellation(paid.order.id, "confirm", admin)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment == PaymentStatus.REFUNDED
        assert seed.stock(variant_id) == 10
        [refund] = gateway.calls_to("refund")
        assert refund["payment_reference"] == "pay_777"
        assert refund["amount_minor_units"] == paid.amount_minor_units
        assert refund["speed"] == "normal"

    def test_confirm_with_payment_due_voids_it(self, manager, placed, shopper, admin, seed, variant_id, gateway):
        manager.request_cancellation(placed.order.id, shopper.identity)

        order = manager.resolve_cancellation(placed.order.id, CancellationAction.CONFIRM, admin)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment == PaymentStatus.FAILED
        assert seed.stock(variant_id) == 10
        assert gateway.calls_to("refund") == []

    def test_late_payment_after_void_changes_nothing(
        self, manager, placed, shopper, admin, seed, variant_id, sign
    ):
        manager.request_cancellation(placed.order.id, shopper.identity)
        manager.resolve_cancellation(placed.order.id, "confirm", admin)
        gateway_order_id = placed.gateway_order_id

        manager.verify_payment(gateway_order_id, "pay_late", sign(gateway_order_id, "pay_late"))

        order = manager.get_order(shopper.identity, placed.order.id)
        assert order.payment == PaymentStatus.FAILED
        assert seed.stock(variant_id) == 10

    def test_confirm_after_failed_payment_does_not_release_twice(
        self, manager, placed, shopper, admin, seed, variant_id
    ):
        manager.verify_payment(placed.gateway_order_id, "pay_777", "forged")
        assert seed.stock(variant_id) == 10
        manager.request_cancellation(placed.order.id, shopper.identity)

        order = manager.resolve_cancellation(placed.order.id, "confirm", admin)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment == PaymentStatus.FAILED
        assert seed.stock(variant_id) == 10

    def test_reject_returns_order_to_ordered(self, manager, paid, shopper, admin, seed, variant_id, gateway):
        manager.request_cancellation(paid.order.id, shopper.identity)

        order = manager.resolve_cancellation(paid.order.id, "reject", admin)

        assert order.status == OrderStatus.ORDERED
        assert order.payment == PaymentStatus.SUCCESSFUL
        assert seed.stock(variant_id) == 6
        assert gateway.calls_to("refund") == []

    def test_refund_failure_leaves_everything_untouched(
        self, manager, paid, shopper, admin, seed, variant_id, gateway
    ):
        manager.request_cancellation(paid.order.id, shopper.identity)
        gateway.configure(refunds_succeed=False, failure_reason="Refund declined")

        with pytest.raises(ExternalGatewayError) as exc:
            manager.resolve_cancellation(paid.order.id, "confirm", admin)

        assert exc.value.messages == {"refund": ["Refund declined"]}
        order = manager.get_order(admin, paid.order.id)
        assert order.status == OrderStatus.PENDING_CANCELLATION
        assert order.payment == PaymentStatus.SUCCESSFUL
        assert seed.stock(variant_id) == 6

    def test_master_can_resolve(self, manager, placed, shopper, seed):
        master = seed.user(Role.MASTER)
        manager.request_cancellation(placed.order.id, shopper.identity)

        order = manager.resolve_cancellation(placed.order.id, "reject", master)

        assert order.status == OrderStatus.ORDERED

    def test_regular_user_cannot_resolve(self, manager, placed, shopper):
        manager.request_cancellation(placed.order.id, shopper.identity)

        with pytest.raises(AuthorizationError):
            manager.resolve_cancellation(placed.order.id, "confirm", shopper.identity)

    def test_unknown_action(self, manager, placed, shopper, admin):
        manager.request_cancellation(placed.order.id, shopper.identity)

        with pytest.raises(ValidationError) as exc:
            manager.resolve_cancellation(placed.order.id, "approve", admin)

        assert "action" in exc.value.messages

    def test_requires_pending_cancellation(self, manager, placed, admin):
        with pytest.raises(InvalidTransition):
            manager.resolve_cancellation(placed.order.id, "confirm", admin)

    def test_cancelled_order_cannot_be_cancelled_again(self, manager, placed, shopper, admin):
        manager.request_cancellation(placed.order.id, shopper.identity)
        manager.resolve_cancellation(placed.order.id, "confirm", admin)

        with pytest.raises(InvalidTransition):
            manager.request_cancellation(placed.order.id, shopper.identity)
