from __future__ import annotations

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base, SoftDeleteMixin, TimestampMixin
from app.models.organization import Company


class MerchantAccount(TimestampMixin, SoftDeleteMixin, Base):
    """Payment gateway account used by a company."""

    __tablename__ = "merchant_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    provider: Mapped[str] = mapped_column(String(64))


class RoutingRule(TimestampMixin, SoftDeleteMixin, Base):
    """Rule routing payments to a merchant account."""

    __tablename__ = "routing_rules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    merchant_account_id: Mapped[int] = mapped_column(
        ForeignKey(MerchantAccount.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    priority: Mapped[int] = mapped_column(default=0)


class Webhook(TimestampMixin, SoftDeleteMixin, Base):
    """Outbound webhook subscription of a company."""

    __tablename__ = "webhooks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(2048))
    events: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
