from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base, SoftDeleteMixin, TimestampMixin
from app.models.customer import Customer
from app.models.organization import Company


class Product(TimestampMixin, SoftDeleteMixin, Base):
    """Sellable product of a company."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    sku: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))


class Subscription(TimestampMixin, SoftDeleteMixin, Base):
    """Recurring plan a customer is subscribed to.

    Attributes:
        company_id: Denormalized owning company for tenant filtering.
        customer_id: Foreign key to the subscribing customer.
        name: Plan name.
        status: Billing status (e.g. ``"active"``, ``"paused"``).
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    customer_id: Mapped[int] = mapped_column(
        ForeignKey(Customer.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32), default="active")


class Order(TimestampMixin, SoftDeleteMixin, Base):
    """Placed order. Payment transactions reference orders and are kept."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    customer_id: Mapped[int] = mapped_column(
        ForeignKey(Customer.id), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(String(64), index=True)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
