"""Move seen source tx hashes from sessions.seen_tx_hashes to seen_trades.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "copytrade"


def upgrade() -> None:
    op.create_table(
        "seen_trades",
        sa.Column(
            "session_id", sa.Text,
            sa.ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("tx_hash", sa.Text, primary_key=True),
        sa.Column("seen_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.execute(
        f"""
        INSERT INTO {SCHEMA}.seen_trades (session_id, tx_hash, seen_at)
        SELECT id, jsonb_array_elements_text(seen_tx_hashes), updated_at
        FROM {SCHEMA}.sessions
        WHERE seen_tx_hashes IS NOT NULL
        ON CONFLICT DO NOTHING
        """
    )
    op.drop_column("sessions", "seen_tx_hashes", schema=SCHEMA)


def downgrade() -> None:
    op.add_column("sessions", sa.Column("seen_tx_hashes", JSONB, nullable=True), schema=SCHEMA)
    op.execute(
        f"""
        UPDATE {SCHEMA}.sessions s
        SET seen_tx_hashes = (
            SELECT jsonb_agg(t.tx_hash ORDER BY t.tx_hash)
            FROM {SCHEMA}.seen_trades t
            WHERE t.session_id = s.id
        )
        """
    )
    op.drop_table("seen_trades", schema=SCHEMA)
