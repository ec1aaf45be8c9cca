from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base, SoftDeleteMixin, TimestampMixin


class Organization(TimestampMixin, Base):
    """Top of the tenant hierarchy. Organizations are never soft-deleted."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))


class Client(TimestampMixin, SoftDeleteMixin, Base):
    """Client (reseller/agency) owned by an organization.

    Attributes:
        organization_id: Foreign key to the owning organization.
        name: Display name.
    """

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey(Organization.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))


class Company(TimestampMixin, SoftDeleteMixin, Base):
    """Company (tenant) owned by a client.

    Attributes:
        client_id: Foreign key to the owning client.
        name: Display name.
        slug: Short unique code used in URLs.
    """

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey(Client.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class Department(TimestampMixin, SoftDeleteMixin, Base):
    """Department within a company."""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
