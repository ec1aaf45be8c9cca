from __future__ import annotations

"""Irreversible end of the soft-delete lifecycle: retention purge and compliance delete."""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.db.utils import utcnow
from app.models import SoftDeleteMixin
from app.models.deletion_log import DeletionLog
from app.schemas.soft_delete import PermanentDeleteResult, PurgeResult
from app.services import deletion_ledger
from app.services.hierarchy_service import AccessValidator, CallerContext
from app.services.soft_delete import (
    authorize_scope,
    cascade_descendants,
    entity_label,
    get_entity,
    get_entity_or_raise,
    hard_delete_row,
)
from app.services.soft_delete_errors import (
    ConcurrentModification,
    EntityPurged,
    NotDeleted,
    RolePermissionDenied,
)
from app.services.soft_delete_registry import (
    EntityType,
    PermanentDeleteReason,
    Role,
    get_policy,
    is_personal_data,
    purge_order,
    retention_days,
)


async def purge_expired(db: AsyncSession, *, now: datetime | None = None) -> PurgeResult:
    """Hard-delete every soft-deleted row whose retention window has elapsed.

    An entry deleted at ``T`` is purged once ``now >= T + retention_days``.
    Types are visited children-first so dependants disappear before their
    owners. Each entry is purged in its own transaction: a failure (for
    instance a remaining foreign-key reference) is logged, rolled back and
    skipped, and the entry stays eligible for the next run.

    Args:
        db: Async SQLAlchemy session.
        now: Reference time, defaults to the current UTC time.

    Returns:
        Purged counts per entity type and the overall total.
    """

    now = now or utcnow()
    purged: dict[str, int] = defaultdict(int)
    total = 0

    for entity_type in purge_order():
        cutoff = now - timedelta(days=retention_days(entity_type))
        stmt = (
            select(DeletionLog.entity_id)
            .where(DeletionLog.entity_type == str(entity_type))
            .where(DeletionLog.deleted_at <= cutoff)
            .where(DeletionLog.restored_at.is_(None))
            .where(DeletionLog.purged_at.is_(None))
            .order_by(DeletionLog.deleted_at.desc(), DeletionLog.id.desc())
        )
        entity_ids = [row[0] for row in (await db.execute(stmt)).all()]
        # Release the read transaction before the per-entry transactions.
        await db.commit()

        for entity_id in entity_ids:
            try:
                if await _purge_one(db, entity_type, entity_id):
                    purged[str(entity_type)] += 1
                    total += 1
            except Exception:
                logger.warning(
                    "Failed to purge %s:%s; it stays eligible for the next run.",
                    entity_type,
                    entity_id,
                    exc_info=True,
                )

    logger.info("Retention purge completed: %d records removed.", total)
    return PurgeResult(purged=dict(purged), total=total)


async def _purge_one(db: AsyncSession, entity_type: EntityType, entity_id: int) -> bool:
    try:
        claimed = await deletion_ledger.mark_purged(
            db, entity_type, entity_id, PermanentDeleteReason.RETENTION_EXPIRED
        )
        if not claimed:
            # Restored or purged since the sweep started.
            await db.rollback()
            logger.info("Skipping purge of %s:%s: no longer pending.", entity_type, entity_id)
            return False

        removed = await hard_delete_row(db, entity_type, entity_id)
        if not removed and await get_entity(db, entity_type, entity_id) is not None:
            raise ConcurrentModification(
                f"{entity_type} {entity_id} is live but has a pending deletion record",
                entity_type=str(entity_type),
                entity_id=entity_id,
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return True


async def permanently_delete(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity_id: int,
    reason: PermanentDeleteReason,
) -> PermanentDeleteResult:
    """Irreversibly remove a soft-deleted entity ahead of its retention window.

    Personal-data types under ``GDPR_REQUEST`` are anonymized in place: the
    row and its relations stay, identifying fields are overwritten, and the
    same fields are scrubbed from the entity's ledger label and snapshots.
    Everything else is hard-deleted together with its cascade descendants,
    children first. A descendant that cannot be removed is logged and skipped;
    the root's own removal is all-or-nothing.

    Raises:
        RolePermissionDenied: Caller is not ``SUPER_ADMIN``.
        EntityNotFound: No such row.
        EntityPurged: The entity was already purged or anonymized.
        NotDeleted: The entity is live; it must be soft-deleted first.
        ScopeAccessDenied: The entity is outside the caller's scope.
    """

    if caller.role != Role.SUPER_ADMIN:
        raise RolePermissionDenied(caller.role, "permanently delete", str(entity_type))

    entity = await get_entity_or_raise(db, entity_type, entity_id)
    if entity.deleted_at is None:
        raise NotDeleted(str(entity_type), entity_id, action="permanently deleted")

    entry = await deletion_ledger.find_active_by_entity(db, entity_type, entity_id)
    if entry is None:
        latest = await deletion_ledger.find_latest_by_entity(db, entity_type, entity_id)
        if latest is not None and latest.purged_at is not None:
            raise EntityPurged(str(entity_type), entity_id)

    await authorize_scope(db, validator, caller, entity_type, entity)

    if reason == PermanentDeleteReason.GDPR_REQUEST and is_personal_data(entity_type):
        return await _anonymize(db, entity_type, entity, reason)

    failed: list[str] = []
    purged = 0
    try:
        if entry is not None:
            members = await deletion_ledger.list_by_cascade(
                db, entry.cascade_id, exclude_entry_id=entry.id
            )
            descendants = cascade_descendants(entity_type, entity_id, members)
            for member in reversed(descendants):
                member_type = EntityType(member.entity_type)
                try:
                    async with db.begin_nested():
                        await hard_delete_row(db, member_type, member.entity_id)
                        await deletion_ledger.mark_purged(
                            db, member_type, member.entity_id, reason
                        )
                    purged += 1
                except Exception:
                    logger.warning(
                        "Could not hard delete %s:%s during permanent delete of %s:%s.",
                        member_type,
                        member.entity_id,
                        entity_type,
                        entity_id,
                        exc_info=True,
                    )
                    failed.append(f"{member_type}:{member.entity_id}")

        await hard_delete_row(db, entity_type, entity_id)
        await deletion_ledger.mark_purged(db, entity_type, entity_id, reason)
        purged += 1
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning(
        "Permanently deleted %s:%s (reason: %s, cascade purged: %d, failed: %d).",
        entity_type,
        entity_id,
        reason,
        purged - 1,
        len(failed),
    )
    return PermanentDeleteResult(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        action="deleted",
        purged_count=purged,
        failed=failed,
    )


async def _anonymize(
    db: AsyncSession,
    entity_type: EntityType,
    entity: SoftDeleteMixin,
    reason: PermanentDeleteReason,
) -> PermanentDeleteResult:
    entity_id = getattr(entity, "id")
    try:
        redacted: dict[str, Any] = {}
        for field, value in get_policy(entity_type).redactions.items():
            redacted[field] = value(entity_id) if callable(value) else value
            setattr(entity, field, redacted[field])
        await deletion_ledger.redact_personal_data(
            db, entity_type, entity_id, redacted, entity_label(entity)
        )
        await deletion_ledger.mark_purged(db, entity_type, entity_id, reason)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning("Anonymized %s:%s for GDPR compliance.", entity_type, entity_id)
    return PermanentDeleteResult(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        action="anonymized",
        purged_count=1,
    )
