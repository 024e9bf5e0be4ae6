"""Copy-trade order model — one attempt to mirror (or close) a position."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from copytrade_core.models.events import Side

OrderStatus = Literal[
    "pending", "submitted", "partial", "filled", "failed", "canceled", "simulated",
]
OrderKind = Literal["mirror", "mirror_close", "take_profit", "stop_loss", "manual_close"]

TERMINAL_STATUSES = frozenset({"filled", "failed", "canceled", "simulated"})
FILLED_STATUSES = frozenset({"filled", "simulated"})
OPEN_STATUSES = frozenset({"pending", "submitted", "partial"})


class CopyTradeOrder(BaseModel):
    """A mirror order and its lifecycle state."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    session_id: str
    source_tx_hash: str
    source_trader: str
    asset_id: str
    side: Side
    kind: OrderKind = "mirror"
    price: Decimal
    source_price: Decimal
    size_usdc: Decimal
    size_shares: Decimal | None = None
    filled_shares: Decimal = Decimal("0")
    filled_usdc: Decimal = Decimal("0")
    status: OrderStatus = "pending"
    fill_price: Decimal | None = None
    slippage_bps: Decimal | None = None
    error_message: str | None = None
    venue_order_id: str | None = None
    close_out: bool = False
    simulate: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def requested_shares(self) -> Decimal:
        """Shares the order aims to fill: explicit for sells, implied for buys."""
        if self.size_shares is not None:
            return self.size_shares
        return self.size_usdc / self.price

    @property
    def remaining_usdc(self) -> Decimal:
        """Notional still unfilled, at the submitted price."""
        remaining = self.requested_shares - self.filled_shares
        if remaining <= 0:
            return Decimal("0")
        return remaining * self.price
