from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.db.utils import as_utc, utcnow
from app.models import SoftDeleteMixin
from app.models.deletion_log import DeletionLog
from app.schemas.soft_delete import RestoreResult
from app.services import deletion_ledger
from app.services.hierarchy_service import AccessValidator, CallerContext
from app.services.soft_delete import (
    authorize_scope,
    cascade_descendants,
    clear_deletion,
    get_entity,
    get_entity_or_raise,
)
from app.services.soft_delete_errors import (
    ConcurrentModification,
    EntityPurged,
    NotDeleted,
    ParentStillDeleted,
    RetentionExpired,
    RolePermissionDenied,
)
from app.services.soft_delete_registry import (
    EntityType,
    can_restore,
    parent_links,
    retention_days,
)


def expires_at(entry: DeletionLog) -> datetime:
    """Return the instant at which a ledger entry becomes eligible for purge."""

    entity_type = EntityType(entry.entity_type)
    return as_utc(entry.deleted_at) + timedelta(days=retention_days(entity_type))


def is_restorable(entry: DeletionLog, now: datetime | None = None) -> bool:
    """Whether an entry is live and still inside its retention window."""

    if entry.purged_at is not None or entry.restored_at is not None:
        return False
    return (now or utcnow()) < expires_at(entry)


async def find_deleted_parent(
    db: AsyncSession, entity_type: EntityType, entity: SoftDeleteMixin
) -> tuple[EntityType, int] | None:
    """Return ``(type, id)`` of a declared owner of ``entity`` that is soft-deleted."""

    for parent_type, link_field in parent_links(entity_type):
        parent_id = getattr(entity, link_field, None)
        if parent_id is None:
            continue
        parent = await get_entity(db, parent_type, parent_id)
        if parent is not None and parent.deleted_at is not None:
            return parent_type, parent_id
    return None


async def restore_entity(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity_id: int,
    *,
    cascade: bool = True,
) -> RestoreResult:
    """Restore a soft-deleted entity and, optionally, its cascade descendants.

    Descendants are the other live ledger entries of the same cascade that
    were deleted through this entity. They are replayed in ascending
    ``deleted_at`` order so every parent is live again before its children.

    Args:
        db: Async SQLAlchemy session.
        validator: Scope resolver for the caller.
        caller: Acting user.
        entity_type: Registry tag of the entity to restore.
        entity_id: Primary key of the entity to restore.
        cascade: Whether to restore descendants from the same cascade.

    Descendants whose own retention window has elapsed stay deleted, and so
    does everything below them; they are reported in ``skipped``.

    Returns:
        Total number of restored entities, root included, and the
        ``"Type:id"`` labels of descendants left deleted.

    Raises:
        RolePermissionDenied: Role may not restore this type.
        EntityNotFound: No such row.
        EntityPurged: The entity was purged or anonymized.
        NotDeleted: The entity is live.
        RetentionExpired: The retention window has elapsed.
        ParentStillDeleted: An owning entity is still soft-deleted.
        ScopeAccessDenied: The entity is outside the caller's scope.
        ConcurrentModification: The ledger entry changed state concurrently.
    """

    if not can_restore(caller.role, entity_type):
        raise RolePermissionDenied(caller.role, "restore", str(entity_type))

    entity = await get_entity_or_raise(db, entity_type, entity_id)
    if entity.deleted_at is None:
        raise NotDeleted(str(entity_type), entity_id)

    entry = await deletion_ledger.find_active_by_entity(db, entity_type, entity_id)
    if entry is None:
        latest = await deletion_ledger.find_latest_by_entity(db, entity_type, entity_id)
        if latest is not None and latest.purged_at is not None:
            raise EntityPurged(str(entity_type), entity_id)
        logger.warning(
            "Restoring %s:%s without an active deletion log entry.",
            entity_type,
            entity_id,
        )
    elif not is_restorable(entry):
        raise RetentionExpired(str(entity_type), entity_id, retention_days(entity_type))

    parent = await find_deleted_parent(db, entity_type, entity)
    if parent is not None:
        raise ParentStillDeleted(str(entity_type), entity_id, str(parent[0]), parent[1])

    await authorize_scope(db, validator, caller, entity_type, entity)

    restored = 0
    skipped: list[str] = []
    try:
        clear_deletion(entity)
        restored += 1
        if entry is not None:
            if not await deletion_ledger.mark_restored(
                db, entity_type, entity_id, caller.user_id
            ):
                raise ConcurrentModification(
                    f"Deletion record of {entity_type} {entity_id} changed while "
                    "restoring; reload and retry",
                    entity_type=str(entity_type),
                    entity_id=entity_id,
                )

        if cascade and entry is not None:
            members = await deletion_ledger.list_by_cascade(
                db, entry.cascade_id, exclude_entry_id=entry.id
            )
            now = utcnow()
            left_deleted: set[tuple[str, int]] = set()
            for member in cascade_descendants(entity_type, entity_id, members):
                member_type = EntityType(member.entity_type)
                owner_left_deleted = any(
                    (str(parent_type), member.cascaded_from) in left_deleted
                    for parent_type, _ in parent_links(member_type)
                )
                if owner_left_deleted or not is_restorable(member, now):
                    # Expired members and everything below them stay deleted.
                    left_deleted.add((member.entity_type, member.entity_id))
                    skipped.append(f"{member_type}:{member.entity_id}")
                    continue
                row = await get_entity(db, member_type, member.entity_id)
                if row is None or row.deleted_at is None:
                    continue
                clear_deletion(row)
                await deletion_ledger.mark_restored(
                    db, member_type, member.entity_id, caller.user_id
                )
                restored += 1
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Restored %s:%s with %d total records (%d left deleted).",
        entity_type,
        entity_id,
        restored,
        len(skipped),
    )
    return RestoreResult(
        entity_type=entity_type,
        entity_id=entity_id,
        restored_count=restored,
        skipped=skipped,
    )
