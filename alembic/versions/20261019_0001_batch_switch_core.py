"""batches, users and batch switch ledger

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _tables() -> set[str]:
    return set(inspect(op.get_bind()).get_table_names())


def upgrade() -> None:
    tables = _tables()
    if "batches" not in tables:
        op.create_table(
            "batches",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.UniqueConstraint("name"),
        )
        op.create_index("ix_batches_id", "batches", ["id"])
        op.create_index("ix_batches_is_active", "batches", ["is_active"])

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("external_id", sa.String(length=120), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("name", sa.String(length=180), nullable=False, server_default=""),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="student"),
            sa.Column("current_batch_id", sa.Integer(), sa.ForeignKey("batches.id"), nullable=True),
            sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("suspended_at", sa.DateTime(), nullable=True),
            sa.Column("suspended_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("suspend_reason", sa.String(length=500), nullable=True),
            sa.Column("batch_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
        op.create_index("ix_users_email", "users", ["email"])
        op.create_index("ix_users_role", "users", ["role"])
        op.create_index("ix_users_current_batch_id", "users", ["current_batch_id"])
        op.create_index("ix_users_is_suspended", "users", ["is_suspended"])

    if "batch_switch_history" not in tables:
        op.create_table(
            "batch_switch_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("from_batch_id", sa.Integer(), sa.ForeignKey("batches.id"), nullable=True),
            sa.Column("to_batch_id", sa.Integer(), sa.ForeignKey("batches.id"), nullable=False),
            sa.Column("switched_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("user_id", "switched_at", name="uq_batch_switch_history_user_switched_at"),
        )
        op.create_index("ix_batch_switch_history_id", "batch_switch_history", ["id"])
        op.create_index("ix_batch_switch_history_user_id", "batch_switch_history", ["user_id"])
        op.create_index("ix_batch_switch_history_switched_at", "batch_switch_history", ["switched_at"])
        op.create_index(
            "ix_batch_switch_history_user_switched_at",
            "batch_switch_history",
            ["user_id", "switched_at"],
        )


def downgrade() -> None:
    tables = _tables()
    for name in ("batch_switch_history", "users", "batches"):
        if name in tables:
            op.drop_table(name)
