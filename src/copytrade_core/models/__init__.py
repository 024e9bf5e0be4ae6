"""Pydantic domain models."""

from copytrade_core.models.events import (
    ExecutionReport,
    PriceTick,
    Resolution,
    Side,
    SourceTrade,
)
from copytrade_core.models.order import CopyTradeOrder, OrderKind, OrderStatus
from copytrade_core.models.position import DUST_SHARES, Position
from copytrade_core.models.session import CopyTradeSession, SessionStatus, create_session
from copytrade_core.models.updates import (
    BalanceUpdate,
    CopyTradeUpdate,
    OrderCanceled,
    OrderFailed,
    OrderFilled,
    OrderPlaced,
    OrderSummary,
    SessionPaused,
    SessionResumed,
    SessionStopped,
    parse_update,
)

__all__ = [
    "BalanceUpdate",
    "CopyTradeOrder",
    "CopyTradeSession",
    "CopyTradeUpdate",
    "DUST_SHARES",
    "ExecutionReport",
    "OrderCanceled",
    "OrderFailed",
    "OrderFilled",
    "OrderKind",
    "OrderPlaced",
    "OrderStatus",
    "OrderSummary",
    "Position",
    "PriceTick",
    "Resolution",
    "SessionPaused",
    "SessionResumed",
    "SessionStatus",
    "SessionStopped",
    "Side",
    "SourceTrade",
    "create_session",
    "parse_update",
]
