"""Create payments and users tables

Revision ID: 001
Revises: None
Create Date: 2025-06-02 00:00:00.000000+00:00

What:  Creates the `users` lookup table and the `payments` ledger.
How:   Portable column types (String UUIDs, JSON features, Numeric amounts)
       so the same migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops both tables (destructive, all ledger data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users and payments with their constraints and indexes."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=True)

    op.create_table(
        "payments",
        sa.Column("payment_id", sa.String(36), nullable=False, comment="Internal payment identifier (uuid4)"),
        sa.Column("order_id", sa.String(64), nullable=False, comment="PayPal order id assigned at order creation"),
        sa.Column(
            "transaction_id",
            sa.String(64),
            nullable=False,
            server_default=sa.text("''"),
            comment="PayPal capture id assigned at capture",
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column(
            "status",
            sa.String(16),
            nullable=False,
            server_default=sa.text("'CREATED'"),
            comment="CREATED, APPROVED, CAPTURED, VOIDED or FAILED",
        ),
        sa.Column("payer_email", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("payer_name", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("package_name", sa.String(255), nullable=False),
        sa.Column("package_features", sa.JSON(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("create_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capture_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("payment_id"),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=True)
    op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"])
    op.create_index("idx_payments_created_at", "payments", ["created_at"])
    op.create_index("idx_payments_user_id", "payments", ["user_id"])


def downgrade() -> None:
    """Drop both tables. Destructive."""
    op.drop_index("idx_payments_user_id", table_name="payments")
    op.drop_index("idx_payments_created_at", table_name="payments")
    op.drop_index("ix_payments_transaction_id", table_name="payments")
    op.drop_index("ix_payments_order_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_users_user_id", table_name="users")
    op.drop_table("users")
