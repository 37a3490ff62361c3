"""Initial schema: staging products

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if "staging_products" in inspector.get_table_names():
        # Table already exists, skip migration
        return

    op.create_table(
        "staging_products",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("title", sa.Text),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("prompt_override", sa.Text),
        sa.Column("prompt", sa.Text),
        sa.Column("size", sa.Text),
        sa.Column("source_bucket", sa.Text),
        sa.Column("source_path", sa.Text),
        sa.Column("output_bucket", sa.Text),
        sa.Column("output_path", sa.Text),
        sa.Column("output_url", sa.Text),
        sa.Column("error", sa.Text),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_staging_products_status", "staging_products", ["status"])


def downgrade() -> None:
    op.drop_index("idx_staging_products_status", table_name="staging_products")
    op.drop_table("staging_products")
