from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, Request

from app.deps import CallerDep, DbDep, EntityTypeDep, SuperAdminDep, ValidatorDep
from app.schemas.soft_delete import (
    DeletedListResponse,
    DeleteResult,
    DeletionDetails,
    DeletionPreview,
    PermanentDeleteRequest,
    PermanentDeleteResult,
    PurgeResult,
    RestoreRequest,
    RestoreResult,
    SoftDeleteRequest,
)
from app.services.deleted_records_service import get_deletion_details, list_deleted
from app.services.restore_service import restore_entity
from app.services.retention_purge_scheduler import RetentionPurgeScheduler
from app.services.retention_service import permanently_delete, purge_expired
from app.services.soft_delete import preview_delete, soft_delete_entity
from app.services.soft_delete_registry import parse_entity_type


router = APIRouter()


@router.get("/deleted", response_model=DeletedListResponse)
async def list_deleted_records(
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
    entity_type: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    deleted_after: Annotated[datetime | None, Query()] = None,
    deleted_before: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeletedListResponse:
    """Return deleted records visible to the caller, newest first.

    Args:
        caller: Authenticated caller with role and scope.
        db: Async SQLAlchemy session.
        validator: Scope resolver for the caller.
        entity_type: Optional entity type filter, e.g. ``Customer``.
        search: Optional case-insensitive substring of the entity name.
        deleted_after: Only records deleted at or after this instant.
        deleted_before: Only records deleted at or before this instant.
        limit: Page size (max 200).
        offset: Number of records to skip.

    Returns:
        Paginated :class:`DeletedListResponse`.
    """

    return await list_deleted(
        db,
        validator,
        caller,
        entity_type=parse_entity_type(entity_type) if entity_type else None,
        search=search,
        deleted_after=deleted_after,
        deleted_before=deleted_before,
        limit=limit,
        offset=offset,
    )


@router.post("/purge-expired", response_model=PurgeResult)
async def run_retention_purge(
    _: SuperAdminDep, request: Request, db: DbDep
) -> PurgeResult:
    """Trigger the retention purge immediately.

    Uses the application's scheduler when available so a manual run cannot
    overlap with the daily job; an overlapping request returns an empty result.
    """

    scheduler: RetentionPurgeScheduler | None = getattr(
        request.app.state, "retention_purge_scheduler", None
    )
    if scheduler is None:
        return await purge_expired(db)
    result = await scheduler.run_once()
    return result or PurgeResult()


@router.get("/{entity_type}/{entity_id}/preview", response_model=DeletionPreview)
async def preview_soft_delete(
    entity_type: EntityTypeDep,
    entity_id: int,
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
) -> DeletionPreview:
    """Return the cascade impact of deleting an entity without changing it."""

    return await preview_delete(db, validator, caller, entity_type, entity_id)


@router.post("/{entity_type}/{entity_id}/delete", response_model=DeleteResult)
async def soft_delete(
    entity_type: EntityTypeDep,
    entity_id: int,
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
    payload: SoftDeleteRequest | None = None,
) -> DeleteResult:
    payload = payload or SoftDeleteRequest()
    return await soft_delete_entity(
        db,
        validator,
        caller,
        entity_type,
        entity_id,
        reason=payload.reason,
        cascade=payload.cascade,
    )


@router.post("/{entity_type}/{entity_id}/restore", response_model=RestoreResult)
async def restore(
    entity_type: EntityTypeDep,
    entity_id: int,
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
    payload: RestoreRequest | None = None,
) -> RestoreResult:
    payload = payload or RestoreRequest()
    return await restore_entity(
        db, validator, caller, entity_type, entity_id, cascade=payload.cascade
    )


@router.get("/{entity_type}/{entity_id}", response_model=DeletionDetails)
async def deletion_details(
    entity_type: EntityTypeDep,
    entity_id: int,
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
) -> DeletionDetails:
    """Return the deletion record of an entity with its cascade members."""

    return await get_deletion_details(db, validator, caller, entity_type, entity_id)


@router.post(
    "/{entity_type}/{entity_id}/permanent-delete",
    response_model=PermanentDeleteResult,
)
async def permanent_delete(
    entity_type: EntityTypeDep,
    entity_id: int,
    payload: PermanentDeleteRequest,
    caller: CallerDep,
    db: DbDep,
    validator: ValidatorDep,
) -> PermanentDeleteResult:
    """Irreversibly delete or anonymize a soft-deleted entity.

    Only ``SUPER_ADMIN`` may call this; other roles receive 403.
    """

    return await permanently_delete(
        db, validator, caller, entity_type, entity_id, payload.reason
    )
