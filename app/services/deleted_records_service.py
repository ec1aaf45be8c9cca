from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.utils import utcnow
from app.models.deletion_log import DeletionLog
from app.schemas.soft_delete import (
    CascadeRecord,
    DeletedListResponse,
    DeletedRecord,
    DeletionDetails,
)
from app.services.hierarchy_service import AccessValidator, CallerContext
from app.services.restore_service import expires_at, is_restorable
from app.services.soft_delete_errors import DeletionRecordNotFound, ScopeAccessDenied
from app.services.soft_delete_registry import EntityType, retention_days


def _to_record(entry: DeletionLog, now: datetime) -> dict:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "entity_name": entry.entity_name,
        "company_id": entry.company_id,
        "organization_id": entry.organization_id,
        "deleted_at": entry.deleted_at,
        "deleted_by": entry.deleted_by,
        "reason": entry.reason,
        "cascade_id": entry.cascade_id,
        "cascaded_from": entry.cascaded_from,
        "can_restore": is_restorable(entry, now),
        "expires_at": expires_at(entry),
    }


async def list_deleted(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    *,
    entity_type: EntityType | None = None,
    search: str | None = None,
    deleted_after: datetime | None = None,
    deleted_before: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> DeletedListResponse:
    """Return a page of non-restored deletion records visible to the caller.

    Records are limited to the companies in the caller's scope.
    Organization-scoped callers additionally see the records of their own
    organization that carry no company (clients, organization-wide users).
    Purged records stay listed with ``can_restore`` set to False.

    Args:
        db: Async SQLAlchemy session.
        validator: Scope resolver for the caller.
        caller: Acting user.
        entity_type: Optional type filter.
        search: Optional case-insensitive substring of the entity label.
        deleted_after: Optional inclusive lower bound on ``deleted_at``.
        deleted_before: Optional inclusive upper bound on ``deleted_at``.
        limit: Page size.
        offset: Number of records to skip.

    Returns:
        The requested page, newest first, and the total number of matches.
    """

    company_ids = await validator.accessible_company_ids(caller)
    scope_filter = DeletionLog.company_id.in_(sorted(company_ids))
    if caller.is_organization_scoped:
        scope_filter = or_(
            scope_filter,
            and_(
                DeletionLog.company_id.is_(None),
                DeletionLog.organization_id == caller.scope_id,
            ),
        )

    stmt: Select[tuple[DeletionLog]] = (
        select(DeletionLog)
        .where(DeletionLog.restored_at.is_(None))
        .where(scope_filter)
    )
    if entity_type is not None:
        stmt = stmt.where(DeletionLog.entity_type == str(entity_type))
    if search:
        stmt = stmt.where(DeletionLog.entity_name.ilike(f"%{search}%"))
    if deleted_after is not None:
        stmt = stmt.where(DeletionLog.deleted_at >= deleted_after)
    if deleted_before is not None:
        stmt = stmt.where(DeletionLog.deleted_at <= deleted_before)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = int((await db.execute(count_stmt)).scalar_one())

    page_stmt = (
        stmt.order_by(DeletionLog.deleted_at.desc(), DeletionLog.id.desc())
        .offset(offset)
        .limit(limit)
    )
    entries = (await db.execute(page_stmt)).scalars().all()

    now = utcnow()
    return DeletedListResponse(
        items=[DeletedRecord(**_to_record(entry, now)) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


async def get_deletion_details(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity_id: int,
) -> DeletionDetails:
    """Return the current deletion record of an entity with its cascade members.

    Raises:
        DeletionRecordNotFound: The entity has no non-restored deletion record.
        ScopeAccessDenied: The record is outside the caller's scope.
    """

    stmt = (
        select(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .where(DeletionLog.restored_at.is_(None))
        .order_by(DeletionLog.id.desc())
    )
    entry = (await db.execute(stmt)).scalars().first()
    if entry is None:
        raise DeletionRecordNotFound(str(entity_type), entity_id)

    if entry.company_id is None:
        allowed = (
            caller.is_organization_scoped
            and entry.organization_id == caller.scope_id
        )
    else:
        allowed = await validator.can_access_company(caller, entry.company_id)
    if not allowed:
        raise ScopeAccessDenied(
            f"Access denied: {entity_type} {entity_id} is outside your scope",
            entity_type=str(entity_type),
            entity_id=entity_id,
        )

    members_stmt = (
        select(DeletionLog)
        .where(DeletionLog.cascade_id == entry.cascade_id)
        .where(DeletionLog.id != entry.id)
        .where(DeletionLog.restored_at.is_(None))
        .order_by(DeletionLog.deleted_at.asc(), DeletionLog.id.asc())
    )
    members = (await db.execute(members_stmt)).scalars().all()

    return DeletionDetails(
        **_to_record(entry, utcnow()),
        retention_days=retention_days(entity_type),
        cascade_records=[CascadeRecord.model_validate(m) for m in members],
        snapshot=entry.snapshot,
    )
