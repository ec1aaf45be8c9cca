from __future__ import annotations

from typing import Annotated, TypeAlias

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.hierarchy_service import AccessValidator, CallerContext
from app.services.security import (
    get_access_validator,
    get_current_caller,
    require_super_admin,
)
from app.services.soft_delete_registry import EntityType, parse_entity_type
from db.session import get_db


def entity_type_path(entity_type: Annotated[str, Path()]) -> EntityType:
    """Parse the ``{entity_type}`` path segment against the registry."""

    return parse_entity_type(entity_type)


DbDep: TypeAlias = Annotated[AsyncSession, Depends(get_db)]
CallerDep: TypeAlias = Annotated[CallerContext, Depends(get_current_caller)]
SuperAdminDep: TypeAlias = Annotated[CallerContext, Depends(require_super_admin)]
ValidatorDep: TypeAlias = Annotated[AccessValidator, Depends(get_access_validator)]
EntityTypeDep: TypeAlias = Annotated[EntityType, Depends(entity_type_path)]
