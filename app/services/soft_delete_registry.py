from __future__ import annotations

"""Static policy tables for soft-deletable entity types.

Every :class:`EntityType` is bound to exactly one :class:`EntityPolicy`
holding its ORM model, retention period, cascade children, owning-company
column and the roles allowed to delete and restore it. The tables are
checked once at import time: a missing policy, an unknown child link or a
cycle in the cascade graph fails loudly instead of surfacing at request time.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Mapping

from app.models import SoftDeleteMixin
from app.models.commerce import Order, Product, Subscription
from app.models.customer import Customer, CustomerAddress
from app.models.organization import Client, Company, Department
from app.models.payments import MerchantAccount, RoutingRule, Webhook
from app.models.user import User
from app.services.soft_delete_errors import UnknownEntityType

Role = User.Role


class EntityType(StrEnum):
    CLIENT = "Client"
    COMPANY = "Company"
    DEPARTMENT = "Department"
    USER = "User"
    CUSTOMER = "Customer"
    CUSTOMER_ADDRESS = "CustomerAddress"
    SUBSCRIPTION = "Subscription"
    ORDER = "Order"
    PRODUCT = "Product"
    MERCHANT_ACCOUNT = "MerchantAccount"
    ROUTING_RULE = "RoutingRule"
    WEBHOOK = "Webhook"


class PermanentDeleteReason(StrEnum):
    RETENTION_EXPIRED = "RETENTION_EXPIRED"
    GDPR_REQUEST = "GDPR_REQUEST"
    ADMIN_REQUEST = "ADMIN_REQUEST"


@dataclass(frozen=True)
class CascadeLink:
    """Ownership edge: rows of ``child`` whose ``link_field`` equals the parent id."""

    child: EntityType
    link_field: str


@dataclass(frozen=True)
class EntityPolicy:
    """Soft-delete policy of one entity type.

    Args:
        model: ORM model storing rows of this type.
        retention_days: Days a soft-deleted row stays restorable before purge.
        delete_roles: Roles allowed to soft-delete this type.
        restore_roles: Roles allowed to restore this type.
        children: Cascade edges, processed in declaration order.
        company_field: Column holding the owning company id. ``None`` means
            the company is resolved through the parent link.
        organization_level: Whether only organization-scoped callers may act.
        redactions: Field overwrites applied by GDPR anonymization. Values may
            be callables receiving the entity id. Empty for types that hold no
            personal data.
    """

    model: type[SoftDeleteMixin]
    retention_days: int
    delete_roles: frozenset[Role]
    restore_roles: frozenset[Role]
    children: tuple[CascadeLink, ...] = ()
    company_field: str | None = "company_id"
    organization_level: bool = False
    redactions: Mapping[str, Any | Callable[[int], Any]] = field(default_factory=dict)


_ADMINS = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
_MANAGERS = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.MANAGER})


def _anonymized_email(entity_id: int) -> str:
    return f"deleted_{entity_id}@anonymized.local"


ENTITY_POLICIES: dict[EntityType, EntityPolicy] = {
    EntityType.CLIENT: EntityPolicy(
        model=Client,
        retention_days=365,
        delete_roles=frozenset({Role.SUPER_ADMIN}),
        restore_roles=frozenset({Role.SUPER_ADMIN}),
        children=(CascadeLink(EntityType.COMPANY, "client_id"),),
        company_field=None,
        organization_level=True,
    ),
    EntityType.COMPANY: EntityPolicy(
        model=Company,
        retention_days=365,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
        children=(
            CascadeLink(EntityType.DEPARTMENT, "company_id"),
            CascadeLink(EntityType.CUSTOMER, "company_id"),
            CascadeLink(EntityType.PRODUCT, "company_id"),
            CascadeLink(EntityType.MERCHANT_ACCOUNT, "company_id"),
            CascadeLink(EntityType.WEBHOOK, "company_id"),
        ),
        company_field="id",
    ),
    EntityType.DEPARTMENT: EntityPolicy(
        model=Department,
        retention_days=90,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
    ),
    EntityType.USER: EntityPolicy(
        model=User,
        retention_days=90,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
        redactions={
            "email": _anonymized_email,
            "first_name": "GDPR",
            "last_name": "Deleted",
            "phone": None,
            "password_hash": None,
        },
    ),
    EntityType.CUSTOMER: EntityPolicy(
        model=Customer,
        retention_days=90,
        delete_roles=_MANAGERS,
        restore_roles=_MANAGERS,
        children=(
            CascadeLink(EntityType.CUSTOMER_ADDRESS, "customer_id"),
            CascadeLink(EntityType.SUBSCRIPTION, "customer_id"),
            CascadeLink(EntityType.ORDER, "customer_id"),
        ),
        redactions={
            "email": _anonymized_email,
            "first_name": "GDPR",
            "last_name": "Deleted",
            "phone": None,
            "extra": {},
        },
    ),
    EntityType.CUSTOMER_ADDRESS: EntityPolicy(
        model=CustomerAddress,
        retention_days=90,
        delete_roles=_MANAGERS,
        restore_roles=_MANAGERS,
        company_field=None,
    ),
    EntityType.SUBSCRIPTION: EntityPolicy(
        model=Subscription,
        retention_days=365,
        delete_roles=_MANAGERS,
        restore_roles=_MANAGERS,
    ),
    EntityType.ORDER: EntityPolicy(
        model=Order,
        # Financial records: seven years.
        retention_days=2555,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
    ),
    EntityType.PRODUCT: EntityPolicy(
        model=Product,
        retention_days=90,
        delete_roles=_MANAGERS,
        restore_roles=_MANAGERS,
    ),
    EntityType.MERCHANT_ACCOUNT: EntityPolicy(
        model=MerchantAccount,
        retention_days=365,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
        children=(CascadeLink(EntityType.ROUTING_RULE, "merchant_account_id"),),
    ),
    EntityType.ROUTING_RULE: EntityPolicy(
        model=RoutingRule,
        retention_days=90,
        delete_roles=_ADMINS,
        restore_roles=_ADMINS,
    ),
    EntityType.WEBHOOK: EntityPolicy(
        model=Webhook,
        retention_days=30,
        delete_roles=_MANAGERS,
        restore_roles=_MANAGERS,
    ),
}


def parse_entity_type(value: str) -> EntityType:
    """Return the :class:`EntityType` for ``value`` or raise ``UnknownEntityType``."""

    try:
        return EntityType(value)
    except ValueError:
        raise UnknownEntityType(value) from None


def get_policy(entity_type: EntityType | str) -> EntityPolicy:
    policy = ENTITY_POLICIES.get(entity_type)  # type: ignore[call-overload]
    if policy is None:
        raise UnknownEntityType(str(entity_type))
    return policy


def model_for(entity_type: EntityType) -> type[SoftDeleteMixin]:
    return get_policy(entity_type).model


def retention_days(entity_type: EntityType) -> int:
    return get_policy(entity_type).retention_days


def cascade_children(entity_type: EntityType) -> list[EntityType]:
    return [link.child for link in get_policy(entity_type).children]


def parent_link_field(parent_type: EntityType, child_type: EntityType) -> str:
    """Return the column on ``child_type`` that references ``parent_type``.

    Raises:
        KeyError: If ``child_type`` is not a cascade child of ``parent_type``.
    """

    for link in get_policy(parent_type).children:
        if link.child is child_type:
            return link.link_field
    raise KeyError(f"{child_type} is not a cascade child of {parent_type}")


def parent_links(child_type: EntityType) -> list[tuple[EntityType, str]]:
    """Return ``(parent_type, link_field)`` for every declared owner of ``child_type``."""

    return [
        (parent_type, link.link_field)
        for parent_type, policy in ENTITY_POLICIES.items()
        for link in policy.children
        if link.child is child_type
    ]


def can_delete(role: str, entity_type: EntityType) -> bool:
    return role in get_policy(entity_type).delete_roles


def can_restore(role: str, entity_type: EntityType) -> bool:
    return role in get_policy(entity_type).restore_roles


def is_personal_data(entity_type: EntityType) -> bool:
    return bool(get_policy(entity_type).redactions)


def purge_order() -> list[EntityType]:
    """Return every entity type with cascade children listed before their owners."""

    order: list[EntityType] = []
    seen: set[EntityType] = set()

    def visit(node: EntityType) -> None:
        if node in seen:
            return
        seen.add(node)
        for child in cascade_children(node):
            visit(child)
        order.append(node)

    for node in EntityType:
        visit(node)
    return order


def _validate_registry() -> None:
    missing = set(EntityType) - set(ENTITY_POLICIES)
    if missing:
        raise RuntimeError(f"Soft-delete policies missing for: {sorted(missing)}")

    for entity_type, policy in ENTITY_POLICIES.items():
        for link in policy.children:
            child_model = ENTITY_POLICIES[link.child].model
            if not hasattr(child_model, link.link_field):
                raise RuntimeError(
                    f"{entity_type} -> {link.child}: {child_model.__name__} "
                    f"has no column {link.link_field!r}"
                )
        if policy.company_field is None and not policy.organization_level:
            if not parent_links(entity_type):
                raise RuntimeError(
                    f"{entity_type} has neither a company column nor a parent link"
                )

    # Depth-first cycle check over the cascade graph.
    visiting: set[EntityType] = set()
    done: set[EntityType] = set()

    def visit(node: EntityType) -> None:
        if node in done:
            return
        if node in visiting:
            raise RuntimeError(f"Cascade graph contains a cycle through {node}")
        visiting.add(node)
        for child in cascade_children(node):
            visit(child)
        visiting.discard(node)
        done.add(node)

    for node in EntityType:
        visit(node)


_validate_registry()
