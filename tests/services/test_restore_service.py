from datetime import timedelta

import pytest
from sqlalchemy import select

from app.db.utils import as_utc
from app.models.deletion_log import DeletionLog
from app.services import deletion_ledger
from app.services.restore_service import is_restorable, restore_entity
from app.services.retention_service import purge_expired
from app.services.soft_delete import get_entity, soft_delete_entity
from app.services.soft_delete_errors import (
    ConcurrentModification,
    EntityPurged,
    NotDeleted,
    ParentStillDeleted,
    RetentionExpired,
    RolePermissionDenied,
)
from app.services.soft_delete_registry import EntityType
from tests.utils.factories import backdate, make_webhook


async def _delete_company(db, validator, tenant):
    return await soft_delete_entity(
        db, validator, tenant.admin, EntityType.COMPANY, tenant.company_id
    )


@pytest.mark.asyncio
async def test_restore_company_restores_whole_cascade(db_session, validator, tenant):
    # Arrange
    await _delete_company(db_session, validator, tenant)

    # Act
    result = await restore_entity(
        db_session, validator, tenant.admin, EntityType.COMPANY, tenant.company_id
    )

    # Assert
    assert result.restored_count == 10
    for customer_id in tenant.customer_ids:
        row = await get_entity(db_session, EntityType.CUSTOMER, customer_id)
        assert row.deleted_at is None
        assert row.deleted_by is None
        assert row.cascade_id is None
    for sub_id in tenant.subscription_ids:
        row = await get_entity(db_session, EntityType.SUBSCRIPTION, sub_id)
        assert row.deleted_at is None

    entries = (await db_session.execute(select(DeletionLog))).scalars().all()
    assert len(entries) == 10
    assert all(e.restored_at is not None for e in entries)
    assert all(e.restored_by == tenant.admin.user_id for e in entries)


@pytest.mark.asyncio
async def test_restore_child_while_parent_deleted_is_rejected(
    db_session, validator, tenant
):
    # Arrange
    await _delete_company(db_session, validator, tenant)

    # Act / Assert
    with pytest.raises(ParentStillDeleted) as excinfo:
        await restore_entity(
            db_session,
            validator,
            tenant.manager,
            EntityType.SUBSCRIPTION,
            tenant.subscription_ids[0],
        )
    assert excinfo.value.parent_type == "Customer"
    assert "Restore the parent first" in excinfo.value.message
    row = await get_entity(db_session, EntityType.SUBSCRIPTION, tenant.subscription_ids[0])
    assert row.deleted_at is not None


@pytest.mark.asyncio
async def test_restore_intermediate_node_only_restores_its_descendants(
    db_session, validator, tenant
):
    # Arrange
    await soft_delete_entity(
        db_session, validator, tenant.manager, EntityType.CUSTOMER, tenant.customer_ids[0]
    )
    await soft_delete_entity(
        db_session, validator, tenant.manager, EntityType.CUSTOMER, tenant.customer_ids[1]
    )

    # Act
    result = await restore_entity(
        db_session, validator, tenant.manager, EntityType.CUSTOMER, tenant.customer_ids[0]
    )

    # Assert
    assert result.restored_count == 3
    other = await get_entity(db_session, EntityType.CUSTOMER, tenant.customer_ids[1])
    assert other.deleted_at is not None


@pytest.mark.asyncio
async def test_restore_without_cascade(db_session, validator, tenant):
    # Arrange
    await soft_delete_entity(
        db_session, validator, tenant.manager, EntityType.CUSTOMER, tenant.customer_ids[0]
    )

    # Act
    result = await restore_entity(
        db_session,
        validator,
        tenant.manager,
        EntityType.CUSTOMER,
        tenant.customer_ids[0],
        cascade=False,
    )

    # Assert
    assert result.restored_count == 1
    sub = await get_entity(db_session, EntityType.SUBSCRIPTION, tenant.subscription_ids[0])
    assert sub.deleted_at is not None
    # The subscription can now be restored on its own
    follow_up = await restore_entity(
        db_session,
        validator,
        tenant.manager,
        EntityType.SUBSCRIPTION,
        tenant.subscription_ids[0],
    )
    assert follow_up.restored_count == 1


@pytest.mark.asyncio
async def test_restore_live_entity_is_rejected(db_session, validator, tenant):
    # Act / Assert
    with pytest.raises(NotDeleted):
        await restore_entity(
            db_session,
            validator,
            tenant.manager,
            EntityType.CUSTOMER,
            tenant.customer_ids[0],
        )


@pytest.mark.asyncio
async def test_restore_requires_restore_role(db_session, validator, tenant):
    # Arrange
    await _delete_company(db_session, validator, tenant)

    # Act / Assert
    with pytest.raises(RolePermissionDenied):
        await restore_entity(
            db_session, validator, tenant.manager, EntityType.COMPANY, tenant.company_id
        )


@pytest.mark.asyncio
async def test_restore_after_retention_window_is_rejected(db_session, validator, tenant):
    # Arrange
    await soft_delete_entity(
        db_session,
        validator,
        tenant.manager,
        EntityType.CUSTOMER,
        tenant.customer_ids[0],
        cascade=False,
    )
    await backdate(db_session, EntityType.CUSTOMER, tenant.customer_ids[0], days=91)

    # Act / Assert
    with pytest.raises(RetentionExpired):
        await restore_entity(
            db_session,
            validator,
            tenant.manager,
            EntityType.CUSTOMER,
            tenant.customer_ids[0],
        )


@pytest.mark.asyncio
async def test_restore_after_purge_is_rejected(db_session, validator, tenant):
    # Arrange
    webhook = await make_webhook(db_session, tenant.company_id)
    await db_session.commit()
    webhook_id = webhook.id
    await soft_delete_entity(
        db_session, validator, tenant.manager, EntityType.WEBHOOK, webhook_id
    )
    await backdate(db_session, EntityType.WEBHOOK, webhook_id, days=31)
    await purge_expired(db_session)

    # Act / Assert
    with pytest.raises(EntityPurged):
        await restore_entity(
            db_session, validator, tenant.manager, EntityType.WEBHOOK, webhook_id
        )


@pytest.mark.asyncio
async def test_restore_loses_race_against_purge(
    db_session, validator, tenant, monkeypatch
):
    # Arrange
    customer_id = tenant.customer_ids[0]
    await soft_delete_entity(
        db_session, validator, tenant.manager, EntityType.CUSTOMER, customer_id
    )

    async def _already_purged(*args, **kwargs):
        return False

    monkeypatch.setattr(deletion_ledger, "mark_restored", _already_purged)

    # Act / Assert
    with pytest.raises(ConcurrentModification) as excinfo:
        await restore_entity(
            db_session, validator, tenant.manager, EntityType.CUSTOMER, customer_id
        )
    assert excinfo.value.status_code == 409
    row = await get_entity(db_session, EntityType.CUSTOMER, customer_id)
    assert row.deleted_at is not None


@pytest.mark.asyncio
async def test_is_restorable_boundaries(db_session, validator, tenant):
    # Arrange
    await soft_delete_entity(
        db_session,
        validator,
        tenant.manager,
        EntityType.CUSTOMER,
        tenant.customer_ids[0],
        cascade=False,
    )
    entry = await deletion_ledger.find_active_by_entity(
        db_session, EntityType.CUSTOMER, tenant.customer_ids[0]
    )
    deleted_at = as_utc(entry.deleted_at)

    # Assert
    assert is_restorable(entry, deleted_at + timedelta(days=89))
    assert not is_restorable(entry, deleted_at + timedelta(days=90))



@pytest.mark.asyncio
async def test_cascade_restore_leaves_expired_members_deleted(
    db_session, validator, tenant
):
    # Arrange: 100 days later the company (365 days) is restorable, its
    # customers (90 days) are not.
    customer_ids = list(tenant.customer_ids)
    subscription_ids = list(tenant.subscription_ids)
    await _delete_company(db_session, validator, tenant)
    await backdate(db_session, EntityType.COMPANY, tenant.company_id, days=100)
    for customer_id in customer_ids:
        await backdate(db_session, EntityType.CUSTOMER, customer_id, days=100)
    for sub_id in subscription_ids:
        await backdate(db_session, EntityType.SUBSCRIPTION, sub_id, days=100)

    # Act
    result = await restore_entity(
        db_session, validator, tenant.admin, EntityType.COMPANY, tenant.company_id
    )

    # Assert
    assert result.restored_count == 1
    assert sorted(result.skipped) == sorted(
        [f"Customer:{i}" for i in customer_ids]
        + [f"Subscription:{i}" for i in subscription_ids]
    )
    company = await get_entity(db_session, EntityType.COMPANY, tenant.company_id)
    assert company.deleted_at is None
    for customer_id in customer_ids:
        row = await get_entity(db_session, EntityType.CUSTOMER, customer_id)
        assert row.deleted_at is not None
        assert await deletion_ledger.find_active_by_entity(
            db_session, EntityType.CUSTOMER, customer_id
        ) is not None
    for sub_id in subscription_ids:
        row = await get_entity(db_session, EntityType.SUBSCRIPTION, sub_id)
        assert row.deleted_at is not None

    with pytest.raises(RetentionExpired):
        await restore_entity(
            db_session, validator, tenant.admin, EntityType.CUSTOMER, customer_ids[0]
        )
