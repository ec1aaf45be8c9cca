from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base, SoftDeleteMixin, TimestampMixin
from app.models.organization import Company


class User(TimestampMixin, SoftDeleteMixin, Base):
    """Administrative user of the platform.

    The role decides which entity types a user may delete or restore; the
    scope (``scope_type`` + ``scope_id``) decides which companies they may act
    on.
    """

    __tablename__ = "users"

    class Role(StrEnum):
        SUPER_ADMIN = "SUPER_ADMIN"
        ADMIN = "ADMIN"
        MANAGER = "MANAGER"
        USER = "USER"

    class ScopeType(StrEnum):
        ORGANIZATION = "ORGANIZATION"
        CLIENT = "CLIENT"
        COMPANY = "COMPANY"
        DEPARTMENT = "DEPARTMENT"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), index=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_id: Mapped[int | None] = mapped_column(
        ForeignKey(Company.id), nullable=True, index=True
    )

    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role", values_callable=lambda e: [m.value for m in e]),
        default=Role.USER,
        nullable=False,
    )
    scope_type: Mapped[ScopeType] = mapped_column(
        Enum(
            ScopeType,
            name="scope_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=ScopeType.COMPANY,
        nullable=False,
    )
    scope_id: Mapped[int] = mapped_column(nullable=False)

    @property
    def full_name(self) -> str | None:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or None
