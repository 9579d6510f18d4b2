"""Per-date opening-hours overrides.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "availability_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("override_date", sa.Date(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("custom_opening_time", sa.Time(), nullable=True),
        sa.Column("custom_closing_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("override_date", name="uq_availability_overrides_override_date"),
        sa.CheckConstraint(
            "(custom_opening_time IS NULL) = (custom_closing_time IS NULL)",
            name="check_override_hours_paired",
        ),
    )
    op.create_index("ix_availability_overrides_id", "availability_overrides", ["id"])


def downgrade() -> None:
    op.drop_index("ix_availability_overrides_id", table_name="availability_overrides")
    op.drop_table("availability_overrides")
