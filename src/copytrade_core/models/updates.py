"""CopyTradeUpdate — tagged union of state changes pushed to subscribers."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class OrderSummary(BaseModel):
    id: str
    asset_id: str
    side: str
    size_usdc: Decimal
    price: Decimal
    source_trader: str
    simulate: bool


class _Update(BaseModel):
    session_id: str
    owner: str


class OrderPlaced(_Update):
    type: Literal["order_placed"] = "order_placed"
    order: OrderSummary


class OrderFilled(_Update):
    type: Literal["order_filled"] = "order_filled"
    order_id: str
    fill_price: Decimal
    filled_shares: Decimal
    slippage_bps: Decimal
    partial: bool = False


class OrderFailed(_Update):
    type: Literal["order_failed"] = "order_failed"
    order_id: str
    error: str


class OrderCanceled(_Update):
    type: Literal["order_canceled"] = "order_canceled"
    order_id: str
    reason: str


class SessionPaused(_Update):
    type: Literal["session_paused"] = "session_paused"
    reason: str | None = None


class SessionResumed(_Update):
    type: Literal["session_resumed"] = "session_resumed"


class SessionStopped(_Update):
    type: Literal["session_stopped"] = "session_stopped"
    reason: str
    auto: bool = False


class BalanceUpdate(_Update):
    type: Literal["balance_update"] = "balance_update"
    remaining_capital: Decimal
    positions_value: Decimal
    reserved_usdc: Decimal


CopyTradeUpdate = Annotated[
    Union[
        OrderPlaced,
        OrderFilled,
        OrderFailed,
        OrderCanceled,
        SessionPaused,
        SessionResumed,
        SessionStopped,
        BalanceUpdate,
    ],
    Field(discriminator="type"),
]

UPDATE_ADAPTER: TypeAdapter[CopyTradeUpdate] = TypeAdapter(CopyTradeUpdate)


def parse_update(data: dict) -> CopyTradeUpdate:
    """Rebuild an update from its JSON form (e.g. on the far side of a socket)."""
    return UPDATE_ADAPTER.validate_python(data)
