"""create payment_request

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "payment_request",
        sa.Column("id", sa.String(length=450), nullable=False),
        sa.Column("fees", sa.Numeric(18, 2), nullable=False),
        sa.Column("container_number", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("Pending", "Paid", "Failed", name="payment_status", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("date_created", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payment_request_id"), "payment_request", ["id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_payment_request_id"), table_name="payment_request")
    op.drop_table("payment_request")
