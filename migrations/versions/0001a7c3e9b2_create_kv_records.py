"""create_kv_records

Create the `kv_records` table holding every epic, slice, ticket and
relationship-graph document as a versioned JSON value.

Revision ID: 0001a7c3e9b2
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001a7c3e9b2"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)

    if "kv_records" not in set(inspector.get_table_names()):
        op.create_table(
            "kv_records",
            sa.Column("key", sa.String(length=512), nullable=False),
            sa.Column("value", sa.JSON(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("version >= 1", name="ck_kv_version_positive"),
            sa.PrimaryKeyConstraint("key"),
        )


def downgrade():
    op.drop_table("kv_records")
