"""Catalogue tables read by pricing and the cart reader.

Category, product and discount CRUD belong to the catalogue service; this
engine only reads them. ``ProductVariant.stock`` is the one column written
here, and only by the stock ledger.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.clock import utcnow
from shared.store import Base


def _uuid() -> str:
    return str(uuid4())


class DiscountType(Enum):
    REGULAR = "REGULAR"
    FLASH = "FLASH"


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    products = relationship("Product", back_populates="category")
    discounts = relationship("Discount", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(String(2000))
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    category = relationship("Category", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product")
    discounts = relationship("Discount", back_populates="product")


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"))
    sku: Mapped[str] = mapped_column(String(64), unique=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    stock: Mapped[int] = mapped_column(Integer, default=0)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product = relationship("Product", back_populates="variants")


class Discount(Base):
    """A time-bound percentage discount attached to a product or a category."""

    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (category_id IS NULL)",
            name="ck_discount_single_attachment",
        ),
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_discount_percentage_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str | None] = mapped_column(ForeignKey("products.id"))
    category_id: Mapped[str | None] = mapped_column(ForeignKey("categories.id"))
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2))
    type: Mapped[str] = mapped_column(String(16), default=DiscountType.REGULAR.value)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    valid_to: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product = relationship("Product", back_populates="discounts")
    category = relationship("Category", back_populates="discounts")
