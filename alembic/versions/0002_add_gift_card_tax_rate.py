"""add nullable tax_rate to gift_cards

Existing rows stay null; backfills/gift_card_tax_rate.py copies the
region's tax rate onto them.

Revision ID: 0002_add_gift_card_tax_rate
Revises: 0001_create_commerce_tables
Create Date: 2026-10-12 09:30:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_add_gift_card_tax_rate"
down_revision: Union[str, None] = "0001_create_commerce_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("gift_cards") as batch_op:
        batch_op.add_column(sa.Column("tax_rate", sa.Float(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("gift_cards") as batch_op:
        batch_op.drop_column("tax_rate")
