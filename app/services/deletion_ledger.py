from __future__ import annotations

"""Append-only deletion ledger.

The helpers here never commit: they are called inside the transaction of the
operation that mutates the entity rows, so both roll back together.
"""

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import Select, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.utils import utcnow
from app.models import SoftDeleteMixin
from app.models.deletion_log import DeletionLog
from app.schemas.soft_delete import EntitySnapshot
from app.services.soft_delete_registry import EntityType


def build_snapshot(
    entity_type: EntityType, entity: SoftDeleteMixin, captured_at: datetime
) -> dict[str, Any]:
    """Serialize the column values of ``entity`` into a versioned JSON envelope."""

    mapper = inspect(entity).mapper
    data = {attr.key: getattr(entity, attr.key) for attr in mapper.column_attrs}
    snapshot = EntitySnapshot(
        entity_type=str(entity_type), captured_at=captured_at, data=data
    )
    return snapshot.model_dump(mode="json")


async def record(
    db: AsyncSession,
    *,
    entity_type: EntityType,
    entity_id: int,
    entity_name: str,
    company_id: int | None,
    snapshot: dict[str, Any] | None,
    cascade_id: str,
    deleted_by: int | None,
    deleted_at: datetime,
    cascaded_from: int | None = None,
    reason: str | None = None,
    organization_id: int | None = None,
) -> DeletionLog:
    """Append one ledger entry for a freshly soft-deleted entity.

    Returns:
        The pending ``DeletionLog`` row (flushed, so it has an id).
    """

    entry = DeletionLog(
        entity_type=str(entity_type),
        entity_id=entity_id,
        entity_name=entity_name[:255],
        company_id=company_id,
        organization_id=organization_id,
        deleted_by=deleted_by,
        deleted_at=deleted_at,
        reason=reason,
        cascade_id=cascade_id,
        cascaded_from=cascaded_from,
        snapshot=snapshot,
    )
    db.add(entry)
    await db.flush()
    return entry


def _active() -> Select[tuple[DeletionLog]]:
    return (
        select(DeletionLog)
        .where(DeletionLog.restored_at.is_(None))
        .where(DeletionLog.purged_at.is_(None))
    )


async def find_active_by_entity(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> DeletionLog | None:
    """Return the live (not restored, not purged) entry of an entity, if any."""

    stmt = (
        _active()
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .order_by(DeletionLog.id.desc())
    )
    return (await db.execute(stmt)).scalars().first()


async def find_latest_by_entity(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> DeletionLog | None:
    """Return the most recent entry of an entity regardless of its status."""

    stmt = (
        select(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .order_by(DeletionLog.id.desc())
    )
    return (await db.execute(stmt)).scalars().first()


async def list_by_cascade(
    db: AsyncSession,
    cascade_id: str,
    *,
    exclude_entry_id: int | None = None,
    newest_first: bool = False,
) -> list[DeletionLog]:
    """Return the live entries of a cascade in deletion order.

    Entries are ordered by ``deleted_at`` ascending (parents before children)
    with the insertion id as tie-breaker, or the exact reverse when
    ``newest_first`` is set.

    Args:
        db: Async SQLAlchemy session.
        cascade_id: Cascade grouping token.
        exclude_entry_id: Ledger entry to leave out, typically the root's.
        newest_first: Reverse the order (children before parents).
    """

    stmt = _active().where(DeletionLog.cascade_id == cascade_id)
    if exclude_entry_id is not None:
        stmt = stmt.where(DeletionLog.id != exclude_entry_id)
    if newest_first:
        stmt = stmt.order_by(DeletionLog.deleted_at.desc(), DeletionLog.id.desc())
    else:
        stmt = stmt.order_by(DeletionLog.deleted_at.asc(), DeletionLog.id.asc())
    return list((await db.execute(stmt)).scalars().all())


async def _reload_entries(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> None:
    # Bulk updates bypass the identity map; overwrite any loaded entries.
    await db.execute(
        select(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .execution_options(populate_existing=True)
    )


async def mark_restored(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: int,
    restored_by: int | None,
) -> bool:
    """Mark the live entry of an entity as restored.

    Entries that are already restored or purged are left untouched, so calling
    this twice keeps the first timestamp. Entries already loaded in ``db``
    reflect the new state afterwards.

    Returns:
        True if an entry changed state.
    """

    stmt = (
        update(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .where(DeletionLog.restored_at.is_(None))
        .where(DeletionLog.purged_at.is_(None))
        .values(restored_at=utcnow(), restored_by=restored_by)
        .execution_options(synchronize_session=False)
    )
    claimed = bool((await db.execute(stmt)).rowcount)
    if claimed:
        await _reload_entries(db, entity_type, entity_id)
    return claimed


async def mark_purged(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: int,
    reason: str,
) -> bool:
    """Mark the live entry of an entity as purged.

    Restored entries are never marked purged, and already purged entries keep
    their original ``purged_at``/``purge_reason``.

    Returns:
        True if an entry changed state.
    """

    stmt = (
        update(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
        .where(DeletionLog.restored_at.is_(None))
        .where(DeletionLog.purged_at.is_(None))
        .values(purged_at=utcnow(), purge_reason=str(reason))
        .execution_options(synchronize_session=False)
    )
    claimed = bool((await db.execute(stmt)).rowcount)
    if claimed:
        await _reload_entries(db, entity_type, entity_id)
    return claimed


async def redact_personal_data(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: int,
    redacted: Mapping[str, Any],
    label: str,
) -> int:
    """Scrub personal data from every ledger entry of an anonymized entity.

    This is the only change ever made to historical fields: the label and the
    snapshot's copies of ``redacted`` fields are overwritten with the
    anonymized values. Other snapshot fields are kept.

    Returns:
        Number of entries rewritten.
    """

    entries = (
        await db.execute(
            select(DeletionLog)
            .where(DeletionLog.entity_type == str(entity_type))
            .where(DeletionLog.entity_id == entity_id)
        )
    ).scalars().all()
    for entry in entries:
        entry.entity_name = label[:255]
        if entry.snapshot:
            data = dict(entry.snapshot.get("data") or {})
            data.update({k: v for k, v in redacted.items() if k in data})
            entry.snapshot = {
                **entry.snapshot,
                "data": data,
                "redacted_at": utcnow().isoformat(),
            }
    await db.flush()
    return len(entries)
