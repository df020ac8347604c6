"""node snapshots and enrichment queue

Revision ID: 0001_node_snapshots
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_node_snapshots"
down_revision = None
branch_labels = None
depends_on = None


enrichment_status_enum = sa.Enum("PENDING", "DONE", "FAILED", name="enrichment_status_enum")


def upgrade() -> None:
    op.create_table(
        "node_snapshots",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("address", sa.String(length=256), nullable=False),
        sa.Column("node_identity", sa.String(length=256), nullable=True),
        sa.Column("is_reachable", sa.Boolean(), nullable=True),
        sa.Column("version", sa.String(length=50), nullable=False),
        sa.Column("last_observed_at", sa.BigInteger(), nullable=False),
        sa.Column("uptime_seconds", sa.BigInteger(), nullable=True),
        sa.Column("rpc_port", sa.Integer(), nullable=True),
        sa.Column("storage_committed", sa.BigInteger(), nullable=True),
        sa.Column("storage_used", sa.BigInteger(), nullable=True),
        sa.Column("storage_usage_percent", sa.Float(), nullable=True),
        sa.Column("staleness_sec", sa.BigInteger(), nullable=False),
        sa.Column("captured_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_node_snapshots_address", "node_snapshots", ["address"], unique=False)
    op.create_index("ix_node_snapshots_node_identity", "node_snapshots", ["node_identity"], unique=False)
    op.create_index("ix_node_snapshots_captured_at", "node_snapshots", ["captured_at"], unique=False)
    op.create_index(
        "ix_node_snapshots_address_captured_at",
        "node_snapshots",
        ["address", "captured_at"],
        unique=False,
    )

    op.create_table(
        "enrichment_tasks",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("ip", sa.String(length=45), nullable=False, unique=True),
        sa.Column("status", enrichment_status_enum, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column(
            "enqueued_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_enrichment_tasks_status", "enrichment_tasks", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_enrichment_tasks_status", table_name="enrichment_tasks")
    op.drop_table("enrichment_tasks")
    enrichment_status_enum.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_node_snapshots_address_captured_at", table_name="node_snapshots")
    op.drop_index("ix_node_snapshots_captured_at", table_name="node_snapshots")
    op.drop_index("ix_node_snapshots_node_identity", table_name="node_snapshots")
    op.drop_index("ix_node_snapshots_address", table_name="node_snapshots")
    op.drop_table("node_snapshots")
