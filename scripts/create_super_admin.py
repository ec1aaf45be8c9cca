from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

from sqlalchemy import select

# Ensure the backend root (parent of this file's directory) is on sys.path
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from app.core.logging import logger  # noqa: E402
from app.models.organization import Organization  # noqa: E402
from app.models.user import User  # noqa: E402
from db.session import AsyncSessionLocal  # noqa: E402


async def _ensure_super_admin(email: str, organization_id: int) -> None:
    """Create or promote an organization-scoped ``SUPER_ADMIN`` user.

    Args:
        email: Email address of the user to upsert.
        organization_id: Organization the user is scoped to.
    """

    async with AsyncSessionLocal() as session:
        org = await session.get(Organization, organization_id)
        if org is None:
            logger.error("Organization %s does not exist.", organization_id)
            raise SystemExit(1)

        result = await session.execute(
            select(User).where(User.email == email).where(User.deleted_at.is_(None))
        )
        user: User | None = result.scalar_one_or_none()

        if user is None:
            session.add(
                User(
                    email=email,
                    role=User.Role.SUPER_ADMIN,
                    scope_type=User.ScopeType.ORGANIZATION,
                    scope_id=organization_id,
                )
            )
            await session.commit()
            logger.info(
                "Created super admin %s for organization %s.", email, organization_id
            )
            return

        user.role = User.Role.SUPER_ADMIN
        user.scope_type = User.ScopeType.ORGANIZATION
        user.scope_id = organization_id
        await session.commit()
        logger.info(
            "Promoted %s to super admin of organization %s.", email, organization_id
        )


def main() -> NoReturn:
    """Entry point for creating/promoting a super admin user."""
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Create or promote a SUPER_ADMIN user.")
    parser.add_argument("email")
    parser.add_argument("--organization-id", type=int, default=1)
    args = parser.parse_args()
    asyncio.run(_ensure_super_admin(args.email, args.organization_id))
    raise SystemExit(0)


if __name__ == "__main__":
    main()
