from __future__ import annotations

from fastapi import status


class SoftDeleteError(Exception):
    """Base class for rejected soft-delete, restore and purge operations.

    Every subclass names the rule that was violated so operators know the
    corrective step, and maps onto a single HTTP status.

    Args:
        message: Human-readable explanation naming the violated rule.
        entity_type: Registry tag of the affected entity, when known.
        entity_id: Primary key of the affected entity, when known.
    """

    code: str = "soft_delete_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id


class UnknownEntityType(SoftDeleteError):
    code = "unknown_entity_type"

    def __init__(self, entity_type: str) -> None:
        super().__init__(
            f"{entity_type} is not a soft-deletable entity type",
            entity_type=entity_type,
        )


class RolePermissionDenied(SoftDeleteError):
    code = "role_permission_denied"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, role: str, action: str, entity_type: str) -> None:
        super().__init__(
            f"Role {role} cannot {action} {entity_type}", entity_type=entity_type
        )


class ScopeAccessDenied(SoftDeleteError):
    code = "scope_access_denied"
    status_code = status.HTTP_403_FORBIDDEN


class EntityNotFound(SoftDeleteError):
    code = "entity_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity_type: str, entity_id: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class DeletionRecordNotFound(SoftDeleteError):
    code = "deletion_record_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity_type: str, entity_id: int) -> None:
        super().__init__(
            f"Deletion record not found for {entity_type}:{entity_id}",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class AlreadyDeleted(SoftDeleteError):
    code = "already_deleted"

    def __init__(self, entity_type: str, entity_id: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} is already deleted",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class NotDeleted(SoftDeleteError):
    code = "not_deleted"

    def __init__(self, entity_type: str, entity_id: int, action: str = "restored") -> None:
        super().__init__(
            f"{entity_type} {entity_id} is not deleted and cannot be {action}",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class ParentStillDeleted(SoftDeleteError):
    code = "parent_still_deleted"

    def __init__(
        self, entity_type: str, entity_id: int, parent_type: str, parent_id: int
    ) -> None:
        super().__init__(
            f"Cannot restore {entity_type} {entity_id}: parent entity "
            f"{parent_type} {parent_id} is still deleted. Restore the parent first.",
            entity_type=entity_type,
            entity_id=entity_id,
        )
        self.parent_type = parent_type
        self.parent_id = parent_id


class EntityPurged(SoftDeleteError):
    code = "entity_purged"

    def __init__(self, entity_type: str, entity_id: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} has been permanently purged and cannot be restored",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class RetentionExpired(SoftDeleteError):
    code = "retention_expired"

    def __init__(self, entity_type: str, entity_id: int, retention_days: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} cannot be restored: its {retention_days}-day "
            "retention window has elapsed",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class ConcurrentModification(SoftDeleteError):
    """Raised when a purge and a restore race on the same ledger entry."""

    code = "concurrent_modification"
    status_code = status.HTTP_409_CONFLICT
