from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, with_loader_criteria
from sqlalchemy.pool import NullPool

from app.models import SoftDeleteMixin
from core.settings import get_settings


settings = get_settings()

if settings.debug:
    engine = create_async_engine(
        settings.sqlalchemy_database_uri_async,
        echo=settings.db_echo,
        poolclass=NullPool,
        pool_pre_ping=True,
    )
else:
    engine = create_async_engine(
        settings.sqlalchemy_database_uri_async,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


# Exclude soft-deleted rows from every ORM SELECT unless explicitly opted out
# with ``execution_options(include_deleted=True)``.
@event.listens_for(Session, "do_orm_execute")
def _add_soft_delete_criteria(orm_execute_state) -> None:  # type: ignore[no-untyped-def]
    if not orm_execute_state.is_select:
        return
    if orm_execute_state.execution_options.get("include_deleted", False):
        return
    orm_execute_state.statement = orm_execute_state.statement.options(
        with_loader_criteria(
            SoftDeleteMixin,
            lambda cls: cls.deleted_at.is_(None),
            include_aliases=True,
        )
    )
