from __future__ import annotations

"""Tenant scope resolution over the organization → client → company → department tree.

The soft-delete engine only depends on the :class:`AccessValidator` protocol;
:class:`HierarchyAccessValidator` is the database-backed implementation used by
the HTTP layer.
"""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.organization import Client, Company, Department
from app.models.user import User

ScopeType = User.ScopeType


@dataclass(frozen=True)
class CallerContext:
    """Identity, role and scope of the user performing an operation."""

    user_id: int
    role: str
    scope_type: str
    scope_id: int

    @property
    def is_organization_scoped(self) -> bool:
        return self.scope_type == ScopeType.ORGANIZATION

    @classmethod
    def from_user(cls, user: User) -> "CallerContext":
        return cls(
            user_id=user.id,
            role=str(user.role),
            scope_type=str(user.scope_type),
            scope_id=user.scope_id,
        )


class AccessValidator(Protocol):
    async def accessible_company_ids(self, caller: CallerContext) -> set[int]: ...

    async def can_access_company(
        self, caller: CallerContext, company_id: int
    ) -> bool: ...


class HierarchyAccessValidator:
    """Resolve caller scopes against the hierarchy tables.

    Soft-deleted companies stay in scope so their deletion records remain
    visible and restorable.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def accessible_company_ids(self, caller: CallerContext) -> set[int]:
        if caller.scope_type == ScopeType.ORGANIZATION:
            stmt = (
                select(Company.id)
                .join(Client, Company.client_id == Client.id)
                .where(Client.organization_id == caller.scope_id)
            )
        elif caller.scope_type == ScopeType.CLIENT:
            stmt = select(Company.id).where(Company.client_id == caller.scope_id)
        elif caller.scope_type == ScopeType.COMPANY:
            return {caller.scope_id}
        elif caller.scope_type == ScopeType.DEPARTMENT:
            stmt = select(Department.company_id).where(
                Department.id == caller.scope_id
            )
        else:
            return set()

        rows = await self.db.execute(stmt.execution_options(include_deleted=True))
        return {int(row[0]) for row in rows.all()}

    async def can_access_company(self, caller: CallerContext, company_id: int) -> bool:
        return company_id in await self.accessible_company_ids(caller)


async def organization_for_scope(
    db: AsyncSession, scope_type: str, scope_id: int
) -> int | None:
    """Return the organization a scope node belongs to, or ``None`` if unknown."""

    if scope_type == ScopeType.ORGANIZATION:
        return scope_id
    if scope_type == ScopeType.CLIENT:
        stmt = select(Client.organization_id).where(Client.id == scope_id)
    elif scope_type == ScopeType.COMPANY:
        stmt = (
            select(Client.organization_id)
            .join(Company, Company.client_id == Client.id)
            .where(Company.id == scope_id)
        )
    elif scope_type == ScopeType.DEPARTMENT:
        stmt = (
            select(Client.organization_id)
            .join(Company, Company.client_id == Client.id)
            .join(Department, Department.company_id == Company.id)
            .where(Department.id == scope_id)
        )
    else:
        return None

    result = await db.execute(stmt.execution_options(include_deleted=True))
    return result.scalar_one_or_none()
