"""Ledger entry and position baseline

Revision ID: 20261018_01
Revises: None
Create Date: 2026-10-18
"""
# pylint: disable=no-member,invalid-name,wrong-import-order

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "ledger_entry",
        sa.Column("ledger_entry_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("sequence_number", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("instrument_id", sa.Text(), nullable=False),
        sa.Column("direction", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(), nullable=False),
        sa.Column("price", sa.Numeric(), nullable=False),
        sa.Column("commission", sa.Numeric(), nullable=True),
        sa.Column("trade_timestamp_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("remaining_quantity", sa.Numeric(), nullable=True),
        sa.Column("cost_basis", sa.Numeric(), nullable=True),
        sa.Column("realized_pnl", sa.Numeric(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("sequence_number", name="uq_ledger_entry_sequence_number"),
        sa.CheckConstraint("direction in ('BUY', 'SELL')", name="ck_ledger_entry_direction"),
        sa.CheckConstraint("quantity > 0", name="ck_ledger_entry_quantity_positive"),
        sa.CheckConstraint("price > 0", name="ck_ledger_entry_price_positive"),
        sa.CheckConstraint("commission IS NULL OR commission >= 0", name="ck_ledger_entry_commission_non_negative"),
        sa.CheckConstraint(
            "remaining_quantity IS NULL OR (remaining_quantity >= 0 AND remaining_quantity <= quantity)",
            name="ck_ledger_entry_remaining_quantity_bounds",
        ),
    )
    op.create_index(
        "ix_ledger_entry_fifo",
        "ledger_entry",
        ["account_id", "instrument_id", "direction", "trade_timestamp_utc", "sequence_number"],
    )

    op.create_table(
        "ledger_position",
        sa.Column("ledger_position_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("instrument_id", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(), nullable=False),
        sa.Column("average_cost", sa.Numeric(), nullable=False),
        sa.Column("total_invested", sa.Numeric(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("account_id", "instrument_id", name="uq_ledger_position_account_instrument"),
        sa.CheckConstraint("quantity > 0", name="ck_ledger_position_quantity_positive"),
    )


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_table("ledger_position")
    op.drop_index("ix_ledger_entry_fifo", table_name="ledger_entry")
    op.drop_table("ledger_entry")
