import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.services.auth_service import create_access_token, decode_token
from app.services.security import (
    get_current_caller,
    get_current_user,
    require_super_admin,
)
from app.services.soft_delete import soft_delete_entity
from app.services.soft_delete_registry import EntityType
from core.settings import get_settings


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_access_token_round_trip_carries_subject():
    # Act
    claims = decode_token(create_access_token("admin@example.com", {"role": "ADMIN"}))

    # Assert
    assert claims["sub"] == "admin@example.com"
    assert claims["role"] == "ADMIN"
    assert "exp" in claims


def test_decode_rejects_token_without_expiry():
    # Arrange
    settings = get_settings()
    token = jwt.encode(
        {"sub": "admin@example.com"},
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )

    # Act / Assert
    with pytest.raises(jwt.PyJWTError):
        decode_token(token)


@pytest.mark.asyncio
async def test_get_current_user_resolves_subject(db_session, tenant):
    # Act
    user = await get_current_user(
        db_session, _bearer(create_access_token("manager@example.com"))
    )
    caller = await get_current_caller(user)

    # Assert
    assert user.email == "manager@example.com"
    assert caller.user_id == tenant.manager.user_id
    assert caller.role == "MANAGER"
    assert caller.scope_id == tenant.company_id


@pytest.mark.asyncio
async def test_get_current_user_rejects_missing_or_invalid_token(db_session, tenant):
    # Act / Assert
    with pytest.raises(HTTPException) as missing:
        await get_current_user(db_session, None)
    with pytest.raises(HTTPException) as invalid:
        await get_current_user(db_session, _bearer("not-a-jwt"))
    assert missing.value.status_code == 401
    assert invalid.value.status_code == 401


@pytest.mark.asyncio
async def test_soft_deleted_user_cannot_authenticate(db_session, validator, tenant):
    # Arrange
    await soft_delete_entity(
        db_session, validator, tenant.admin, EntityType.USER, tenant.viewer.user_id
    )

    # Act / Assert
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user(
            db_session, _bearer(create_access_token("viewer@example.com"))
        )
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_require_super_admin(tenant):
    # Act / Assert
    assert await require_super_admin(tenant.super_admin) is tenant.super_admin
    with pytest.raises(HTTPException) as excinfo:
        await require_super_admin(tenant.admin)
    assert excinfo.value.status_code == 403
