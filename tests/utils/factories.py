from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.utils import as_utc
from app.models.commerce import Order, Product, Subscription
from app.models.customer import Customer, CustomerAddress
from app.models.deletion_log import DeletionLog
from app.models.organization import Client, Company, Department, Organization
from app.models.payments import MerchantAccount, RoutingRule, Webhook
from app.models.user import User
from app.services.hierarchy_service import CallerContext
from app.services.soft_delete import get_entity
from app.services.soft_delete_registry import EntityType


@dataclass
class Tenant:
    organization_id: int
    client_id: int
    company_id: int
    customer_ids: list[int] = field(default_factory=list)
    subscription_ids: list[int] = field(default_factory=list)
    super_admin: CallerContext | None = None
    admin: CallerContext | None = None
    manager: CallerContext | None = None
    viewer: CallerContext | None = None


async def add(db: AsyncSession, obj):
    db.add(obj)
    await db.flush()
    return obj


async def make_company(db: AsyncSession, client_id: int, name: str = "Acme") -> Company:
    return await add(db, Company(client_id=client_id, name=name, slug=name.lower()))


async def make_customer(
    db: AsyncSession, company_id: int, email: str = "jane@example.com"
) -> Customer:
    return await add(
        db,
        Customer(
            company_id=company_id,
            email=email,
            first_name="Jane",
            last_name="Doe",
            phone="+31 6 1234 5678",
            extra={"newsletter": True},
        ),
    )


async def make_subscription(
    db: AsyncSession, customer: Customer, name: str = "Monthly"
) -> Subscription:
    return await add(
        db,
        Subscription(
            company_id=customer.company_id, customer_id=customer.id, name=name
        ),
    )


async def make_order(
    db: AsyncSession, customer: Customer, order_number: str = "ORD-1"
) -> Order:
    return await add(
        db,
        Order(
            company_id=customer.company_id,
            customer_id=customer.id,
            order_number=order_number,
            total=Decimal("19.95"),
        ),
    )


async def make_address(db: AsyncSession, customer: Customer) -> CustomerAddress:
    return await add(
        db,
        CustomerAddress(
            customer_id=customer.id, line1="Main Street 1", city="Utrecht", country="NL"
        ),
    )


async def make_product(db: AsyncSession, company_id: int, sku: str = "SKU-1") -> Product:
    return await add(
        db, Product(company_id=company_id, name="Widget", sku=sku, price=Decimal("5"))
    )


async def make_department(db: AsyncSession, company_id: int) -> Department:
    return await add(db, Department(company_id=company_id, name="Sales"))


async def make_merchant_account(
    db: AsyncSession, company_id: int, rules: int = 0
) -> MerchantAccount:
    account = await add(
        db, MerchantAccount(company_id=company_id, name="Main", provider="stripe")
    )
    for i in range(rules):
        await add(
            db,
            RoutingRule(
                company_id=company_id,
                merchant_account_id=account.id,
                name=f"rule-{i}",
                priority=i,
            ),
        )
    return account


async def make_webhook(db: AsyncSession, company_id: int) -> Webhook:
    return await add(
        db,
        Webhook(
            company_id=company_id,
            name="orders",
            url="https://example.com/hook",
            events=["order.created"],
        ),
    )


async def make_user(
    db: AsyncSession,
    *,
    email: str,
    role: User.Role,
    scope_type: User.ScopeType,
    scope_id: int,
    company_id: int | None = None,
) -> User:
    return await add(
        db,
        User(
            email=email,
            first_name="Test",
            last_name="User",
            phone="+31 20 123 4567",
            password_hash="not-a-real-hash",
            company_id=company_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
        ),
    )


def caller_for(user: User) -> CallerContext:
    return CallerContext.from_user(user)


async def seed_tenant(
    db: AsyncSession, customers: int = 3, subscriptions_per_customer: int = 2
) -> Tenant:
    """Create a full tenant tree plus one user per role and commit it."""

    org = await add(db, Organization(name="Holding"))
    client = await add(db, Client(organization_id=org.id, name="Agency"))
    company = await make_company(db, client.id)

    tenant = Tenant(
        organization_id=org.id, client_id=client.id, company_id=company.id
    )
    for i in range(customers):
        cust = await make_customer(db, company.id, email=f"customer{i}@example.com")
        tenant.customer_ids.append(cust.id)
        for j in range(subscriptions_per_customer):
            sub = await make_subscription(db, cust, name=f"Plan {i}-{j}")
            tenant.subscription_ids.append(sub.id)

    super_admin = await make_user(
        db,
        email="root@example.com",
        role=User.Role.SUPER_ADMIN,
        scope_type=User.ScopeType.ORGANIZATION,
        scope_id=org.id,
    )
    admin = await make_user(
        db,
        email="admin@example.com",
        role=User.Role.ADMIN,
        scope_type=User.ScopeType.COMPANY,
        scope_id=company.id,
        company_id=company.id,
    )
    manager = await make_user(
        db,
        email="manager@example.com",
        role=User.Role.MANAGER,
        scope_type=User.ScopeType.COMPANY,
        scope_id=company.id,
        company_id=company.id,
    )
    viewer = await make_user(
        db,
        email="viewer@example.com",
        role=User.Role.USER,
        scope_type=User.ScopeType.COMPANY,
        scope_id=company.id,
        company_id=company.id,
    )
    tenant.super_admin = caller_for(super_admin)
    tenant.admin = caller_for(admin)
    tenant.manager = caller_for(manager)
    tenant.viewer = caller_for(viewer)

    await db.commit()
    return tenant


async def backdate(
    db: AsyncSession, entity_type: EntityType, entity_id: int, days: int
) -> None:
    """Move the deletion of one entity ``days`` into the past (row and ledger)."""

    delta = timedelta(days=days)
    entity = await get_entity(db, entity_type, entity_id)
    if entity is not None and entity.deleted_at is not None:
        entity.deleted_at = as_utc(entity.deleted_at) - delta
    entries = await db.execute(
        select(DeletionLog)
        .where(DeletionLog.entity_type == str(entity_type))
        .where(DeletionLog.entity_id == entity_id)
    )
    for entry in entries.scalars().all():
        entry.deleted_at = as_utc(entry.deleted_at) - delta
    await db.commit()
