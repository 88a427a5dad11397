"""Add staff table

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-26

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "staff",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("contact", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.String(255)),
        sa.Column("image", sa.Text(), nullable=False),
        sa.Column("aadhar_card", sa.Text(), nullable=False),
        sa.Column("stockist_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["stockist_id"], ["stockists.id"], name="fk_staff_stockist_id", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_staff"),
    )
    op.create_index("ix_staff_stockist_id", "staff", ["stockist_id"])
    op.create_index("ix_staff_created_at", "staff", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_staff_created_at", table_name="staff")
    op.drop_index("ix_staff_stockist_id", table_name="staff")
    op.drop_table("staff")
