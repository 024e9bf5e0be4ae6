"""SQLAlchemy ORM models for the copytrade schema."""

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from copytrade_core.db.base import Base

SCHEMA = "copytrade"


class SessionRow(Base):
    __tablename__ = "sessions"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    config: Mapped[dict] = mapped_column(JSONB, nullable=False)
    initial_capital: Mapped[float] = mapped_column(Numeric, nullable=False)
    remaining_capital: Mapped[float] = mapped_column(Numeric, nullable=False)
    reserved_usdc: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    traders: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cooldown_until: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stop_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class OrderRow(Base):
    __tablename__ = "orders"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_tx_hash: Mapped[str] = mapped_column(Text, nullable=False)
    source_trader: Mapped[str] = mapped_column(Text, nullable=False)
    asset_id: Mapped[str] = mapped_column(Text, nullable=False)
    side: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False, default="mirror")
    price: Mapped[float] = mapped_column(Numeric, nullable=False)
    source_price: Mapped[float] = mapped_column(Numeric, nullable=False)
    size_usdc: Mapped[float] = mapped_column(Numeric, nullable=False)
    size_shares: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    filled_shares: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    filled_usdc: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    fill_price: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    slippage_bps: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    venue_order_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    close_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    simulate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class PositionRow(Base):
    __tablename__ = "positions"
    __table_args__ = (
        UniqueConstraint("session_id", "asset_id"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    asset_id: Mapped[str] = mapped_column(Text, nullable=False)
    buy_shares: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    sell_shares: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    avg_entry_price: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    current_price: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    last_fill_price: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    realized_pnl: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    total_bought_usdc: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    total_sold_usdc: Mapped[float] = mapped_column(Numeric, nullable=False, default=0)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payout_per_share: Mapped[float | None] = mapped_column(Numeric, nullable=True)
    redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_traders: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    opened_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_order_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    price_updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SeenTradeRow(Base):
    """Source tx hashes a session has already evaluated. Append-only."""

    __tablename__ = "seen_trades"
    __table_args__ = {"schema": SCHEMA}

    session_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey(f"{SCHEMA}.sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tx_hash: Mapped[str] = mapped_column(Text, primary_key=True)
    seen_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
