from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base


class DeletionLog(Base):
    """Append-only ledger entry for one soft-deleted entity.

    One row is written per entity each time it is soft-deleted. The
    historical fields (``deleted_at``, ``snapshot``, ``cascade_id`` and the
    rest of the deletion context) are never updated afterwards; only the
    terminal status columns ``restored_at``/``restored_by`` and
    ``purged_at``/``purge_reason`` change.

    Args:
        entity_type: Registry tag of the entity (e.g. ``"Customer"``).
        entity_id: Primary key of the entity in its own table.
        entity_name: Human-readable label captured at deletion time.
        company_id: Owning company, denormalized for scoped listings.
            ``NULL`` for organization-level entities.
        organization_id: Owning organization of entries without a company
            (clients, organization-wide users). ``NULL`` otherwise.
        deleted_by: Id of the acting user.
        deleted_at: Deletion timestamp; starts the retention clock.
        reason: Optional free-text reason supplied by the caller.
        cascade_id: Token shared by every entry of the same cascade.
        cascaded_from: Parent entity id, ``NULL`` for the cascade root.
        snapshot: Versioned JSON serialization of the row at deletion time.
        restored_at: Set when the entity is restored.
        restored_by: Id of the restoring user.
        purged_at: Set when the row is hard-deleted or anonymized.
        purge_reason: ``RETENTION_EXPIRED``, ``GDPR_REQUEST`` or ``ADMIN_REQUEST``.
    """

    __tablename__ = "deletion_logs"
    __table_args__ = (Index("ix_deletion_logs_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(nullable=False)
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    organization_id: Mapped[int | None] = mapped_column(nullable=True, index=True)

    deleted_by: Mapped[int | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cascade_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    cascaded_from: Mapped[int | None] = mapped_column(nullable=True)
    snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    restored_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    restored_by: Mapped[int | None] = mapped_column(nullable=True)
    purged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    purge_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.restored_at is None and self.purged_at is None
