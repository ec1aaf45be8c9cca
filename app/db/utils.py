from __future__ import annotations

from datetime import datetime, timezone
from typing import Type, TypeVar

from sqlalchemy import select
from sqlalchemy.sql import Select

from app.models import SoftDeleteMixin

T = TypeVar("T", bound=SoftDeleteMixin)


def select_active(entity: Type[T]) -> Select:
    """Create a SELECT statement that only returns live (not soft-deleted) rows.

    The ``deleted_at IS NULL`` condition is spelled out explicitly and the
    statement opts out of the session-wide filter, so it behaves the same with
    or without the ``do_orm_execute`` listener installed.
    """
    return (
        select(entity)
        .execution_options(include_deleted=True)
        .where(entity.deleted_at.is_(None))
    )


def select_including_deleted(entity: Type[T]) -> Select:
    """Create a SELECT statement that returns live and soft-deleted rows."""
    return select(entity).execution_options(include_deleted=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Some backends (SQLite) hand back naive datetimes for ``DateTime(timezone=True)``
    columns; those are stored in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
