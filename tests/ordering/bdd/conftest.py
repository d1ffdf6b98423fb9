"""Shared BDD fixtures and step definitions for the order lifecycle."""

from decimal import Decimal

from pytest_bdd import given, parsers, then
from sqlalchemy import func, select

from identity.models import Role
from ordering.order.order import Order


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a customer with an address", target_fixture="customer")
def _(seed):
    return seed.shopper()


@given("an admin", target_fixture="reviewer")
def _(seed):
    return seed.user(Role.ADMIN)


@given(parsers.parse("a variant priced {price} with {stock:d} in stock"), target_fixture="variant_id")
def _(seed, price, stock):
    return seed.variant(price=price, stock=stock)


@given(parsers.parse("a {percentage:d}% product discount on the variant"))
def _(seed, variant_id, percentage):
    seed.discount(percentage, product_id=seed.product_id(variant_id))


@given(parsers.parse("the customer has {quantity:d} of the variant in the cart"))
def _(carts, customer, variant_id, quantity):
    carts.add_item(customer.id, variant_id, quantity)


@given("the customer has placed an order", target_fixture="placed")
def _(manager, customer):
    return manager.create_order(customer.identity, customer.address_id, customer.address_id)


@given("the order has been paid")
def _(manager, placed, sign):
    gateway_order_id = placed.gateway_order_id
    assert manager.verify_payment(gateway_order_id, "pay_bdd", sign(gateway_order_id, "pay_bdd"))


@given("the customer has requested cancellation")
def _(manager, placed, customer):
    manager.request_cancellation(placed.order.id, customer.identity)


@given("the gateway refuses refunds")
def _(gateway):
    gateway.configure(refunds_succeed=False, failure_reason="Refund declined")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse('the request is rejected with "{kind}"'))
def _(outcome, kind):
    assert isinstance(outcome, Exception), f"expected a rejection, got {outcome!r}"
    assert outcome.kind == kind


@then("no order exists")
def _(store):
    with store.transaction() as session:
        assert session.scalar(select(func.count()).select_from(Order)) == 0


@then(parsers.parse('the order is "{status}"'))
def _(manager, placed, reviewer, status):
    assert manager.get_order(reviewer, placed.order.id).status.value == status


@then(parsers.parse('the payment is "{status}"'))
def _(manager, placed, reviewer, status):
    assert manager.get_order(reviewer, placed.order.id).payment.value == status


@then(parsers.parse("the variant has {stock:d} in stock"))
def _(seed, variant_id, stock):
    assert seed.stock(variant_id) == stock


@then(parsers.re(r"the customer's cart holds (?P<count>\d+) lines?"), converters={"count": int})
def _(carts, customer, count):
    assert len(carts.get_cart(customer.id).items) == count


@then(parsers.parse("the line subtotal is {amount}"))
def _(totals, amount):
    assert totals.item_subtotals[0].line_subtotal == Decimal(amount)


@then(parsers.parse("the tax is {amount}"))
def _(totals, amount):
    assert totals.tax_amount == Decimal(amount)


@then(parsers.parse("the total is {amount}"))
def _(totals, amount):
    assert totals.total_amount == Decimal(amount)
