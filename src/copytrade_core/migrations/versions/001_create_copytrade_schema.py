"""Create copytrade schema with sessions, orders and positions tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "copytrade"


def upgrade() -> None:
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "sessions",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("config", JSONB, nullable=False),
        sa.Column("initial_capital", sa.Numeric, nullable=False),
        sa.Column("remaining_capital", sa.Numeric, nullable=False),
        sa.Column("reserved_usdc", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("traders", JSONB, nullable=True),
        sa.Column("seen_tx_hashes", JSONB, nullable=True),
        sa.Column("consecutive_failures", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cooldown_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stop_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_sessions_status", "sessions", ["status"], schema=SCHEMA)

    op.create_table(
        "orders",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column(
            "session_id", sa.Text,
            sa.ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_tx_hash", sa.Text, nullable=False),
        sa.Column("source_trader", sa.Text, nullable=False),
        sa.Column("asset_id", sa.Text, nullable=False),
        sa.Column("side", sa.Text, nullable=False),
        sa.Column("kind", sa.Text, nullable=False, server_default="mirror"),
        sa.Column("price", sa.Numeric, nullable=False),
        sa.Column("source_price", sa.Numeric, nullable=False),
        sa.Column("size_usdc", sa.Numeric, nullable=False),
        sa.Column("size_shares", sa.Numeric, nullable=True),
        sa.Column("filled_shares", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("filled_usdc", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("fill_price", sa.Numeric, nullable=True),
        sa.Column("slippage_bps", sa.Numeric, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("venue_order_id", sa.Text, nullable=True),
        sa.Column("close_out", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("simulate", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_orders_session_created", "orders", ["session_id", "created_at"], schema=SCHEMA,
    )

    op.create_table(
        "positions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "session_id", sa.Text,
            sa.ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("asset_id", sa.Text, nullable=False),
        sa.Column("buy_shares", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("sell_shares", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("avg_entry_price", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("current_price", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("last_fill_price", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("realized_pnl", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("total_bought_usdc", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("total_sold_usdc", sa.Numeric, nullable=False, server_default="0"),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("payout_per_share", sa.Numeric, nullable=True),
        sa.Column("redeemed", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("order_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("source_traders", JSONB, nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_order_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("session_id", "asset_id"),
        schema=SCHEMA,
    )


def downgrade() -> None:
    op.drop_table("positions", schema=SCHEMA)
    op.drop_index("ix_orders_session_created", table_name="orders", schema=SCHEMA)
    op.drop_table("orders", schema=SCHEMA)
    op.drop_index("ix_sessions_status", table_name="sessions", schema=SCHEMA)
    op.drop_table("sessions", schema=SCHEMA)
    op.execute(f"DROP SCHEMA IF EXISTS {SCHEMA}")
