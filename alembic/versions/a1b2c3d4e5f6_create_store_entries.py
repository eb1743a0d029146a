"""create store_entries table

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "store_entries",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("namespace", sa.String(100), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("namespace", "key", name="uq_store_namespace_key"),
    )
    op.create_index("ix_store_entries_namespace", "store_entries", ["namespace"])


def downgrade() -> None:
    op.drop_index("ix_store_entries_namespace", table_name="store_entries")
    op.drop_table("store_entries")
