"""Position model — per (session, asset) exposure tracked by the ledger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

ZERO = Decimal("0")
# Positions below this many shares are treated as closed
DUST_SHARES = Decimal("0.001")


class Position(BaseModel):
    """An open or closed copy-trade position in one asset."""

    session_id: str
    asset_id: str
    buy_shares: Decimal = ZERO
    sell_shares: Decimal = ZERO
    avg_entry_price: Decimal = ZERO
    current_price: Decimal = ZERO
    last_fill_price: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    total_bought_usdc: Decimal = ZERO
    total_sold_usdc: Decimal = ZERO
    resolved: bool = False
    payout_per_share: Decimal | None = None
    redeemed: bool = False
    order_count: int = 0
    source_traders: set[str] = Field(default_factory=set)
    opened_at: datetime | None = None
    last_order_at: datetime | None = None
    price_updated_at: datetime | None = None

    @property
    def net_shares(self) -> Decimal:
        return self.buy_shares - self.sell_shares

    @property
    def is_open(self) -> bool:
        return self.net_shares >= DUST_SHARES and not self.redeemed

    @property
    def is_closed(self) -> bool:
        return not self.is_open

    @property
    def cost_basis(self) -> Decimal:
        if self.net_shares <= 0:
            return ZERO
        return self.net_shares * self.avg_entry_price

    @property
    def current_value(self) -> Decimal:
        if self.net_shares <= 0:
            return ZERO
        return self.net_shares * self.current_price

    @property
    def unrealized_pnl(self) -> Decimal:
        """Mark-to-market P&L on held shares; zero once resolution booked it."""
        if self.resolved or self.net_shares <= 0:
            return ZERO
        return self.current_value - self.cost_basis

    @property
    def total_pnl(self) -> Decimal:
        return self.realized_pnl + self.unrealized_pnl
