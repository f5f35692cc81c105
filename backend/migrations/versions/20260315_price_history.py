"""Add price history for product price changes

Revision ID: 20260315_price_history
Revises: 20260301_initial_schema
Create Date: 2026-03-15 10:30:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260315_price_history"
down_revision = "20260301_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("old_price_cents", sa.Integer(), nullable=False),
        sa.Column("new_price_cents", sa.Integer(), nullable=False),
        sa.Column("changed_by", sa.String(length=120), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_price_history_product_created", "price_history", ["product_id", "created_at"], unique=False
    )


def downgrade():
    op.drop_index("ix_price_history_product_created", table_name="price_history")
    op.drop_table("price_history")
