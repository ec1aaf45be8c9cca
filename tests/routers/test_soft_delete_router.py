import pytest

from app.services.auth_service import create_access_token


def _auth(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(email)}"}


ADMIN = "admin@example.com"
MANAGER = "manager@example.com"
ROOT = "root@example.com"


@pytest.mark.asyncio
async def test_requests_without_token_are_unauthorized(async_client, tenant):
    # Act
    resp = await async_client.get("/soft-delete/deleted")

    # Assert
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_preview_delete_and_restore_company(async_client, tenant):
    # Arrange
    url = f"/soft-delete/Company/{tenant.company_id}"

    # Act
    preview = await async_client.get(f"{url}/preview", headers=_auth(ADMIN))
    deleted = await async_client.post(
        f"{url}/delete", json={"reason": "Contract ended"}, headers=_auth(ADMIN)
    )
    details = await async_client.get(url, headers=_auth(ADMIN))
    restored = await async_client.post(f"{url}/restore", headers=_auth(ADMIN))

    # Assert
    assert preview.status_code == 200
    assert preview.json()["cascade_count"] == {"Customer": 3, "Subscription": 6}
    assert preview.json()["total_affected"] == 10

    assert deleted.status_code == 200
    assert deleted.json()["affected_count"] == 10
    assert deleted.json()["entity_type"] == "Company"

    assert details.status_code == 200
    body = details.json()
    assert body["reason"] == "Contract ended"
    assert body["retention_days"] == 365
    assert len(body["cascade_records"]) == 9
    assert body["cascade_id"] == deleted.json()["cascade_id"]

    assert restored.status_code == 200
    assert restored.json()["restored_count"] == 10


@pytest.mark.asyncio
async def test_list_deleted_with_type_filter(async_client, tenant):
    # Arrange
    await async_client.post(
        f"/soft-delete/Customer/{tenant.customer_ids[0]}/delete",
        headers=_auth(MANAGER),
    )

    # Act
    resp = await async_client.get(
        "/soft-delete/deleted",
        params={"entity_type": "Subscription", "limit": 1},
        headers=_auth(MANAGER),
    )

    # Assert
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 2
    assert data["limit"] == 1
    assert len(data["items"]) == 1
    assert data["items"][0]["entity_type"] == "Subscription"
    assert data["items"][0]["can_restore"] is True


@pytest.mark.asyncio
async def test_unknown_entity_type_is_rejected(async_client, tenant):
    # Act
    resp = await async_client.post("/soft-delete/Invoice/1/delete", headers=_auth(ADMIN))

    # Assert
    assert resp.status_code == 400
    assert resp.json()["code"] == "unknown_entity_type"
    assert resp.json()["entity_type"] == "Invoice"


@pytest.mark.asyncio
async def test_role_denial_is_forbidden(async_client, tenant):
    # Act
    resp = await async_client.post(
        f"/soft-delete/Company/{tenant.company_id}/delete", headers=_auth(MANAGER)
    )

    # Assert
    assert resp.status_code == 403
    assert resp.json()["code"] == "role_permission_denied"


@pytest.mark.asyncio
async def test_restore_child_of_deleted_parent_names_the_parent(async_client, tenant):
    # Arrange
    await async_client.post(
        f"/soft-delete/Company/{tenant.company_id}/delete", headers=_auth(ADMIN)
    )

    # Act
    resp = await async_client.post(
        f"/soft-delete/Subscription/{tenant.subscription_ids[0]}/restore",
        headers=_auth(MANAGER),
    )

    # Assert
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "parent_still_deleted"
    assert "Restore the parent first" in body["detail"]


@pytest.mark.asyncio
async def test_missing_entity_is_not_found(async_client, tenant):
    # Act
    resp = await async_client.get("/soft-delete/Customer/9999", headers=_auth(ADMIN))

    # Assert
    assert resp.status_code == 404
    assert resp.json()["code"] == "deletion_record_not_found"


@pytest.mark.asyncio
async def test_permanent_delete_gdpr(async_client, tenant):
    # Arrange
    customer_id = tenant.customer_ids[0]
    await async_client.post(
        f"/soft-delete/Customer/{customer_id}/delete", headers=_auth(MANAGER)
    )

    # Act
    denied = await async_client.post(
        f"/soft-delete/Customer/{customer_id}/permanent-delete",
        json={"reason": "GDPR_REQUEST"},
        headers=_auth(ADMIN),
    )
    resp = await async_client.post(
        f"/soft-delete/Customer/{customer_id}/permanent-delete",
        json={"reason": "GDPR_REQUEST"},
        headers=_auth(ROOT),
    )

    # Assert
    assert denied.status_code == 403
    assert resp.status_code == 200
    assert resp.json()["action"] == "anonymized"
    assert resp.json()["reason"] == "GDPR_REQUEST"


@pytest.mark.asyncio
async def test_permanent_delete_rejects_unknown_reason(async_client, tenant):
    # Act
    resp = await async_client.post(
        f"/soft-delete/Customer/{tenant.customer_ids[0]}/permanent-delete",
        json={"reason": "BECAUSE"},
        headers=_auth(ROOT),
    )

    # Assert
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_purge_expired_requires_super_admin(async_client, tenant):
    # Act
    denied = await async_client.post("/soft-delete/purge-expired", headers=_auth(ADMIN))
    resp = await async_client.post("/soft-delete/purge-expired", headers=_auth(ROOT))

    # Assert
    assert denied.status_code == 403
    assert resp.status_code == 200
    assert resp.json() == {"purged": {}, "total": 0}


@pytest.mark.asyncio
async def test_health(async_client):
    # Act
    resp = await async_client.get("/health")

    # Assert
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
