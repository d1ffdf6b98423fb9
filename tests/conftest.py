import os
import threading
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from catalogue.models import Category, Discount, DiscountType, Product, ProductVariant
from identity.collaborators import Identity
from identity.models import Address, Role, User
from ordering.cart.management import CartManager
from ordering.order.lifecycle import OrderLifecycleManager
from payments.gateway import FakeGateway
from payments.signature import compute_signature
from shared.clock import utcnow
from shared.config import load_settings
from shared.store import Store


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay and quiet logging before collection."""
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from shared.logging import configure_logging

    configure_logging(env=session.config.option.env)


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def store(settings):
    store = Store(settings.database_uri)
    store.create_schema()
    yield store
    store.drop_schema()
    store.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def carts(store):
    return CartManager(store)


@pytest.fixture
def manager(store, gateway, settings):
    return OrderLifecycleManager(store, gateway, settings)


@pytest.fixture
def sign(settings):
    """Sign a gateway callback the way the real gateway would."""

    def _sign(gateway_order_id: str, gateway_payment_id: str) -> str:
        return compute_signature(settings.gateway.signing_secret, gateway_order_id, gateway_payment_id)

    return _sign


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Shopper:
    identity: Identity
    address_id: str

    @property
    def id(self) -> str:
        return self.identity.id


class Seeder:
    """Insert catalogue and identity rows, one transaction per call."""

    def __init__(self, store: Store) -> None:
        self.store = store
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def category(self, name: str = "Shoes") -> str:
        with self.store.transaction() as session:
            category = Category(name=name)
            session.add(category)
            session.flush()
            return category.id

    def variant(
        self,
        price="1000.00",
        stock: int = 10,
        category_id: str | None = None,
        product_name: str | None = None,
    ) -> str:
        category_id = category_id or self.category()
        n = self._next()
        with self.store.transaction() as session:
            product = Product(name=product_name or f"Product {n}", category_id=category_id)
            product.variants.append(ProductVariant(sku=f"SKU-{n:04d}", price=Decimal(str(price)), stock=stock))
            session.add(product)
            session.flush()
            return product.variants[0].id

    def product_id(self, variant_id: str) -> str:
        with self.store.transaction() as session:
            return session.get(ProductVariant, variant_id).product_id

    def category_id(self, variant_id: str) -> str:
        with self.store.transaction() as session:
            return session.get(ProductVariant, variant_id).product.category_id

    def discount(
        self,
        percentage,
        product_id: str | None = None,
        category_id: str | None = None,
        type: DiscountType = DiscountType.REGULAR,
        valid_from=None,
        valid_to=None,
    ) -> str:
        now = utcnow()
        with self.store.transaction() as session:
            discount = Discount(
                product_id=product_id,
                category_id=category_id,
                percentage=Decimal(str(percentage)),
                type=type.value,
                valid_from=valid_from or now - timedelta(days=1),
                valid_to=valid_to or now + timedelta(days=1),
            )
            session.add(discount)
            session.flush()
            return discount.id

    def soft_delete_variant(self, variant_id: str) -> None:
        with self.store.transaction() as session:
            session.get(ProductVariant, variant_id).deleted_at = utcnow()

    def stock(self, variant_id: str) -> int:
        with self.store.transaction() as session:
            return session.get(ProductVariant, variant_id).stock

    def user(self, role: Role = Role.USER, name: str | None = None) -> Identity:
        n = self._next()
        with self.store.transaction() as session:
            user = User(
                name=name or f"Customer {n}",
                email=f"customer{n}@example.com",
                phone=f"+91-98765-{n:05d}",
                role=role.value,
            )
            session.add(user)
            session.flush()
            return Identity(id=user.id, role=role)

    def address(self, user_id: str, city: str = "Bengaluru") -> str:
        with self.store.transaction() as session:
            address = Address(
                user_id=user_id,
                line1="12 MG Road",
                line2="Flat 4B",
                city=city,
                state="Karnataka",
                postal_code="560001",
                country="India",
            )
            session.add(address)
            session.flush()
            return address.id

    def shopper(self, role: Role = Role.USER) -> Shopper:
        identity = self.user(role)
        return Shopper(identity=identity, address_id=self.address(identity.id))


@pytest.fixture
def seed(store):
    return Seeder(store)


@pytest.fixture
def shopper(seed):
    return seed.shopper()


@pytest.fixture
def admin(seed):
    return seed.user(Role.ADMIN)


@pytest.fixture
def file_store(tmp_path):
    """A file-backed SQLite store; threads get real connections of their own."""
    store = Store(f"sqlite:///{tmp_path / 'cartledger.db'}")
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture
def file_seed(file_store):
    return Seeder(file_store)


@pytest.fixture
def run_concurrently():
    """Start ``count`` threads at once on ``worker(index)``; collect results or raised errors."""

    def _run(worker, count):
        barrier = threading.Barrier(count)
        outcomes = []
        lock = threading.Lock()

        def target(index):
            barrier.wait()
            try:
                result = worker(index)
            except Exception as exc:  # noqa: BLE001
                result = exc
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=target, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return outcomes

    return _run
