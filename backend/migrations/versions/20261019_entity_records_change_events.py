"""Entity records and change feed

Revision ID: 20261019_entity_records
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_entity_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "entity_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scope", "entity_type", "entity_id", name="uq_entity_records_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("entity_records", schema=None) as batch_op:
        batch_op.create_index("ix_entity_records_scope_type", ["scope", "entity_type"], unique=False)

    op.create_table(
        "change_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=16), nullable=False),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("origin", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("change_events", schema=None) as batch_op:
        batch_op.create_index("ix_change_events_scope_id", ["scope", "id"], unique=False)


def downgrade():
    with op.batch_alter_table("change_events", schema=None) as batch_op:
        batch_op.drop_index("ix_change_events_scope_id")
    op.drop_table("change_events")

    with op.batch_alter_table("entity_records", schema=None) as batch_op:
        batch_op.drop_index("ix_entity_records_scope_type")
    op.drop_table("entity_records")
