"""Deletion ledger: owning organization for entries without a company

Revision ID: 20261018_02_deletion_log_organization
Revises: 20261018_01_initial
Create Date: 2026-10-18

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_02_deletion_log_organization"
down_revision: Union[str, None] = "20261018_01_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "deletion_logs", sa.Column("organization_id", sa.Integer(), nullable=True)
    )
    op.create_index(
        "ix_deletion_logs_organization_id", "deletion_logs", ["organization_id"]
    )
    # Client entries predate the column; take the organization from the client row.
    op.execute(
        """
        UPDATE deletion_logs
        SET organization_id = clients.organization_id
        FROM clients
        WHERE deletion_logs.entity_type = 'Client'
          AND deletion_logs.entity_id = clients.id
          AND deletion_logs.company_id IS NULL
        """
    )


def downgrade() -> None:
    op.drop_index("ix_deletion_logs_organization_id", table_name="deletion_logs")
    op.drop_column("deletion_logs", "organization_id")
