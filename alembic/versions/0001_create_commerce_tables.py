"""create regions, gift cards, customers, carts and payment sessions

Revision ID: 0001_create_commerce_tables
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_create_commerce_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "regions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("tax_rate", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "gift_cards",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column(
            "region_id", sa.String(64), sa.ForeignKey("regions.id"), nullable=True
        ),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_gift_cards_region_id", "gift_cards", ["region_id"])
    op.create_table(
        "customers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_customers_email", "customers", ["email"])
    op.create_table(
        "carts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column(
            "customer_id", sa.String(64), sa.ForeignKey("customers.id"), nullable=True
        ),
        sa.Column(
            "region_id", sa.String(64), sa.ForeignKey("regions.id"), nullable=False
        ),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "payment_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cart_id", sa.String(64), sa.ForeignKey("carts.id"), nullable=False),
        sa.Column("provider_id", sa.String(64), nullable=False),
        sa.Column("intent_id", sa.String(255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "authorized",
                "requires_more",
                "error",
                "canceled",
                name="paymentsessionstatus",
            ),
            nullable=False,
        ),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_payment_sessions_cart_id", "payment_sessions", ["cart_id"])
    op.create_index("ix_payment_sessions_intent_id", "payment_sessions", ["intent_id"])


def downgrade() -> None:
    op.drop_index("ix_payment_sessions_intent_id", table_name="payment_sessions")
    op.drop_index("ix_payment_sessions_cart_id", table_name="payment_sessions")
    op.drop_table("payment_sessions")
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS paymentsessionstatus")
    op.drop_table("carts")
    op.drop_index("ix_customers_email", table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_gift_cards_region_id", table_name="gift_cards")
    op.drop_table("gift_cards")
    op.drop_table("regions")
