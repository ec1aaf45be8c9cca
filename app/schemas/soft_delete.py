"""Pydantic schemas for soft-delete, restore and retention purge operations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.services.soft_delete_registry import EntityType, PermanentDeleteReason

SNAPSHOT_VERSION = 1


class EntitySnapshot(BaseModel):
    """Versioned serialization of an entity row captured at deletion time.

    Args:
        version: Format version; bumped when the envelope changes.
        entity_type: Registry tag of the captured entity.
        captured_at: When the snapshot was taken.
        data: Column values keyed by ORM attribute name.
    """

    version: int = SNAPSHOT_VERSION
    entity_type: str
    captured_at: datetime
    data: dict[str, Any]


class SoftDeleteRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)
    cascade: bool = True


class RestoreRequest(BaseModel):
    cascade: bool = True


class PermanentDeleteRequest(BaseModel):
    reason: PermanentDeleteReason


class DeleteResult(BaseModel):
    """Outcome of a soft delete.

    Args:
        cascade_id: Token grouping every entity deleted by this call.
        affected_count: Root plus all cascaded descendants.
    """

    entity_type: EntityType
    entity_id: int
    cascade_id: str
    affected_count: int


class RestoreResult(BaseModel):
    """Outcome of a restore.

    Args:
        restored_count: Entities made live again, root included.
        skipped: ``"Type:id"`` labels of cascade members left deleted because
            their retention window elapsed (or an owner's did).
    """

    entity_type: EntityType
    entity_id: int
    restored_count: int
    skipped: list[str] = []


class PermanentDeleteResult(BaseModel):
    """Outcome of a permanent (compliance) delete.

    Args:
        action: ``"anonymized"`` when personal data was redacted in place,
            ``"deleted"`` when rows were removed.
        purged_count: Number of rows removed or anonymized, root included.
        failed: ``"Type:id"`` labels of cascade members that could not be removed.
    """

    entity_type: EntityType
    entity_id: int
    reason: PermanentDeleteReason
    action: Literal["anonymized", "deleted"]
    purged_count: int
    failed: list[str] = []


class PurgeResult(BaseModel):
    purged: dict[str, int] = {}
    total: int = 0


class DeletionPreview(BaseModel):
    """Dry-run impact of deleting an entity.

    Args:
        cascade_count: Live descendants that would be deleted, per type.
        total_affected: Root plus all descendants.
        warnings: Operator-facing notes about the impact.
    """

    entity_type: EntityType
    entity_id: int
    entity_name: str
    cascade_count: dict[str, int]
    total_affected: int
    warnings: list[str]


class DeletedRecord(BaseModel):
    """Row of the deleted-records listing."""

    id: int
    entity_type: str
    entity_id: int
    entity_name: str
    company_id: int | None = None
    organization_id: int | None = None
    deleted_at: datetime
    deleted_by: int | None = None
    reason: str | None = None
    cascade_id: str
    cascaded_from: int | None = None
    can_restore: bool
    expires_at: datetime


class DeletedListResponse(BaseModel):
    items: list[DeletedRecord]
    total: int
    limit: int
    offset: int


class CascadeRecord(BaseModel):
    entity_type: str
    entity_id: int
    entity_name: str
    cascaded_from: int | None = None

    model_config = {"from_attributes": True}


class DeletionDetails(DeletedRecord):
    """Full ledger entry of one deleted entity with its cascade members."""

    retention_days: int
    cascade_records: list[CascadeRecord]
    snapshot: dict[str, Any] | None = None
