from __future__ import annotations

from collections import defaultdict
from typing import Sequence
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.db.utils import select_active, select_including_deleted, utcnow
from app.models import SoftDeleteMixin
from app.models.deletion_log import DeletionLog
from app.schemas.soft_delete import DeleteResult, DeletionPreview
from app.services import deletion_ledger
from app.services.hierarchy_service import (
    AccessValidator,
    CallerContext,
    organization_for_scope,
)
from app.services.soft_delete_errors import (
    AlreadyDeleted,
    EntityNotFound,
    EntityPurged,
    RolePermissionDenied,
    ScopeAccessDenied,
)
from app.services.soft_delete_registry import (
    EntityType,
    can_delete,
    get_policy,
    model_for,
    parent_links,
)
from core.settings import get_settings

_LABEL_FIELDS = ("name", "email", "sku", "order_number")


async def get_entity(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> SoftDeleteMixin | None:
    """Load a row of ``entity_type`` by id, live or soft-deleted."""

    model = model_for(entity_type)
    stmt = select_including_deleted(model).where(model.id == entity_id)
    return (await db.execute(stmt)).scalars().first()


async def get_entity_or_raise(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> SoftDeleteMixin:
    """Load a row or raise ``EntityPurged``/``EntityNotFound`` when it is gone."""

    entity = await get_entity(db, entity_type, entity_id)
    if entity is not None:
        return entity
    latest = await deletion_ledger.find_latest_by_entity(db, entity_type, entity_id)
    if latest is not None and latest.purged_at is not None:
        raise EntityPurged(str(entity_type), entity_id)
    raise EntityNotFound(str(entity_type), entity_id)


def entity_label(entity: SoftDeleteMixin) -> str:
    for field in _LABEL_FIELDS:
        value = getattr(entity, field, None)
        if value:
            return str(value)
    return str(getattr(entity, "id"))


async def resolve_company_id(
    db: AsyncSession, entity_type: EntityType, entity: SoftDeleteMixin
) -> int | None:
    """Return the id of the company owning ``entity``.

    Organization-level types return ``None``. Types without a company column
    are resolved through their declared parent link (e.g. an address through
    its customer).
    """

    policy = get_policy(entity_type)
    if policy.organization_level:
        return None
    if policy.company_field is not None:
        return getattr(entity, policy.company_field)

    for parent_type, link_field in parent_links(entity_type):
        parent_id = getattr(entity, link_field, None)
        if parent_id is None:
            continue
        parent = await get_entity(db, parent_type, parent_id)
        if parent is not None:
            return await resolve_company_id(db, parent_type, parent)
    return None


async def resolve_organization_id(
    db: AsyncSession, entity_type: EntityType, entity: SoftDeleteMixin
) -> int | None:
    """Return the organization owning an entity that has no company.

    Clients carry the organization directly; users without a company belong
    to the organization of their scope node.
    """

    organization_id = getattr(entity, "organization_id", None)
    if organization_id is not None:
        return organization_id
    scope_type = getattr(entity, "scope_type", None)
    if scope_type is not None:
        return await organization_for_scope(db, scope_type, entity.scope_id)
    return None


async def authorize_scope(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity: SoftDeleteMixin,
) -> int | None:
    """Check that ``caller``'s scope covers ``entity``.

    Entities owned by a company need a caller whose scope covers that company.
    Entities without one (organization-level types, organization-wide users)
    need an organization-scoped caller of the same organization.

    Returns:
        The owning company id, or ``None`` for entities without a company.

    Raises:
        ScopeAccessDenied: If the entity is outside the caller's scope.
    """

    entity_id = getattr(entity, "id")
    company_id = await resolve_company_id(db, entity_type, entity)

    if company_id is None:
        organization_id = await resolve_organization_id(db, entity_type, entity)
        if (
            not caller.is_organization_scoped
            or organization_id is None
            or organization_id != caller.scope_id
        ):
            raise ScopeAccessDenied(
                f"Only organization-scoped users of its organization can manage "
                f"{entity_type} {entity_id}",
                entity_type=str(entity_type),
                entity_id=entity_id,
            )
        return None

    if not await validator.can_access_company(caller, company_id):
        raise ScopeAccessDenied(
            f"Access denied: {entity_type} {entity_id} is outside your scope",
            entity_type=str(entity_type),
            entity_id=entity_id,
        )
    return company_id


async def _live_children(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> list[tuple[EntityType, SoftDeleteMixin]]:
    """Return live direct children of an entity in registry-declared order."""

    children: list[tuple[EntityType, SoftDeleteMixin]] = []
    for link in get_policy(entity_type).children:
        model = model_for(link.child)
        stmt = (
            select_active(model)
            .where(getattr(model, link.link_field) == entity_id)
            .order_by(model.id)
        )
        rows = (await db.execute(stmt)).scalars().all()
        children.extend((link.child, row) for row in rows)
    return children


def cascade_descendants(
    root_type: EntityType, root_id: int, entries: Sequence[DeletionLog]
) -> list[DeletionLog]:
    """Keep the ledger entries that descend from the given root.

    ``entries`` must be ordered parents-first (ascending ``deleted_at``).
    An entry descends from the root when one of its declared parent types,
    combined with its ``cascaded_from`` id, is the root or an earlier
    descendant. Siblings of the root within a larger cascade are dropped.
    """

    reached: set[tuple[str, int]] = {(str(root_type), root_id)}
    descendants: list[DeletionLog] = []
    for entry in entries:
        if entry.cascaded_from is None:
            continue
        entry_type = EntityType(entry.entity_type)
        if any(
            (str(parent_type), entry.cascaded_from) in reached
            for parent_type, _ in parent_links(entry_type)
        ):
            reached.add((entry.entity_type, entry.entity_id))
            descendants.append(entry)
    return descendants


async def hard_delete_row(
    db: AsyncSession, entity_type: EntityType, entity_id: int
) -> int:
    """Remove a soft-deleted row for good. Live rows are never touched.

    Returns:
        Number of rows removed (0 or 1).
    """

    model = model_for(entity_type)
    result = await db.execute(
        delete(model)
        .where(model.id == entity_id)
        .where(model.deleted_at.is_not(None))
        .execution_options(synchronize_session="evaluate")
    )
    return int(result.rowcount or 0)


async def preview_delete(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity_id: int,
) -> DeletionPreview:
    """Compute the impact of soft-deleting an entity without mutating anything.

    Args:
        db: Async SQLAlchemy session.
        validator: Scope resolver for the caller.
        caller: Acting user.
        entity_type: Registry tag of the entity.
        entity_id: Primary key of the entity.

    Returns:
        Per-type counts of live descendants, the total including the root,
        and operator-facing warnings.
    """

    if not can_delete(caller.role, entity_type):
        raise RolePermissionDenied(caller.role, "delete", str(entity_type))

    entity = await get_entity_or_raise(db, entity_type, entity_id)
    if entity.deleted_at is not None:
        raise AlreadyDeleted(str(entity_type), entity_id)
    await authorize_scope(db, validator, caller, entity_type, entity)

    counts: dict[str, int] = defaultdict(int)
    stack: list[tuple[EntityType, int]] = [(entity_type, entity_id)]
    while stack:
        current_type, current_id = stack.pop()
        for child_type, child in await _live_children(db, current_type, current_id):
            counts[str(child_type)] += 1
            stack.append((child_type, getattr(child, "id")))

    total = sum(counts.values()) + 1
    return DeletionPreview(
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_label(entity),
        cascade_count=dict(counts),
        total_affected=total,
        warnings=_preview_warnings(entity_type, counts, total),
    )


def _preview_warnings(
    entity_type: EntityType, counts: dict[str, int], total: int
) -> list[str]:
    warnings: list[str] = []
    if total > get_settings().delete_preview_warning_threshold:
        warnings.append(
            f"This will affect {total} records including cascaded entities"
        )
    if entity_type in (EntityType.CLIENT, EntityType.COMPANY):
        warnings.append(
            "This is a high-level entity. Deletion will cascade to many related records."
        )
    if counts.get(EntityType.ORDER):
        warnings.append(
            f"{counts[EntityType.ORDER]} orders will be soft-deleted (transactions preserved)"
        )
    if counts.get(EntityType.SUBSCRIPTION):
        warnings.append(
            f"{counts[EntityType.SUBSCRIPTION]} active subscriptions will be soft-deleted"
        )
    return warnings


async def soft_delete_entity(
    db: AsyncSession,
    validator: AccessValidator,
    caller: CallerContext,
    entity_type: EntityType,
    entity_id: int,
    *,
    reason: str | None = None,
    cascade: bool = True,
) -> DeleteResult:
    """Soft-delete an entity and, optionally, every live descendant.

    The walk is depth-first over an explicit stack: each entity is marked and
    logged before its children are queried, so ledger order is always
    parents-first. Everything runs in the session's current transaction and is
    committed once at the end; any failure rolls the whole cascade back.

    Args:
        db: Async SQLAlchemy session.
        validator: Scope resolver for the caller.
        caller: Acting user.
        entity_type: Registry tag of the root entity.
        entity_id: Primary key of the root entity.
        reason: Optional free-text reason stored on every ledger entry.
        cascade: Whether to follow the registry's cascade links.

    Returns:
        The new cascade id and the number of entities marked deleted.

    Raises:
        RolePermissionDenied: Role may not delete this type.
        EntityNotFound: No such row.
        AlreadyDeleted: The entity is already soft-deleted.
        ScopeAccessDenied: The entity is outside the caller's scope.
    """

    if not can_delete(caller.role, entity_type):
        raise RolePermissionDenied(caller.role, "delete", str(entity_type))

    entity = await get_entity_or_raise(db, entity_type, entity_id)
    if entity.deleted_at is not None:
        raise AlreadyDeleted(str(entity_type), entity_id)
    await authorize_scope(db, validator, caller, entity_type, entity)

    cascade_id = uuid4().hex
    affected = 0
    try:
        stack: list[tuple[EntityType, SoftDeleteMixin, int | None]] = [
            (entity_type, entity, None)
        ]
        seen: set[tuple[EntityType, int]] = set()
        while stack:
            current_type, current, cascaded_from = stack.pop()
            current_id = getattr(current, "id")
            if (current_type, current_id) in seen:
                continue
            seen.add((current_type, current_id))

            await _mark_deleted(
                db,
                current_type,
                current,
                caller=caller,
                cascade_id=cascade_id,
                cascaded_from=cascaded_from,
                reason=reason,
            )
            affected += 1

            if cascade:
                children = await _live_children(db, current_type, current_id)
                # Reversed so the first declared child is popped first.
                stack.extend(
                    (child_type, child, current_id)
                    for child_type, child in reversed(children)
                )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Soft deleted %s:%s with %d affected records (cascade=%s).",
        entity_type,
        entity_id,
        affected,
        cascade_id,
    )
    return DeleteResult(
        entity_type=entity_type,
        entity_id=entity_id,
        cascade_id=cascade_id,
        affected_count=affected,
    )


async def _mark_deleted(
    db: AsyncSession,
    entity_type: EntityType,
    entity: SoftDeleteMixin,
    *,
    caller: CallerContext,
    cascade_id: str,
    cascaded_from: int | None,
    reason: str | None,
) -> DeletionLog:
    now = utcnow()
    snapshot = deletion_ledger.build_snapshot(entity_type, entity, now)
    company_id = await resolve_company_id(db, entity_type, entity)
    organization_id = (
        await resolve_organization_id(db, entity_type, entity)
        if company_id is None
        else None
    )

    entity.deleted_at = now
    entity.deleted_by = caller.user_id
    entity.cascade_id = cascade_id
    await db.flush()

    return await deletion_ledger.record(
        db,
        entity_type=entity_type,
        entity_id=getattr(entity, "id"),
        entity_name=entity_label(entity),
        company_id=company_id,
        organization_id=organization_id,
        snapshot=snapshot,
        cascade_id=cascade_id,
        deleted_by=caller.user_id,
        deleted_at=now,
        cascaded_from=cascaded_from,
        reason=reason,
    )


def clear_deletion(entity: SoftDeleteMixin) -> None:
    entity.deleted_at = None
    entity.deleted_by = None
    entity.cascade_id = None
