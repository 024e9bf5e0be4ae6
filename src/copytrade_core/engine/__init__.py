"""Copy-trade engine — ledger, risk gate, order lifecycle, session control."""

from copytrade_core.engine.controller import SessionController
from copytrade_core.engine.dispatcher import CopyTradeEngine
from copytrade_core.engine.execution import ExecutionClient
from copytrade_core.engine.health import HealthReport, check_session_health
from copytrade_core.engine.ledger import LedgerSnapshot, LedgerTotals, PositionLedger
from copytrade_core.engine.orders import OrderManager
from copytrade_core.engine.risk import (
    Approve,
    OrderRateLimiter,
    Reject,
    RiskDecision,
    evaluate_exit,
    evaluate_risk,
)
from copytrade_core.engine.store import CopyTradeStore, RestoredSession
from copytrade_core.engine.traders import StaticTraderDirectory, TraderResolver
from copytrade_core.engine.updates import UpdateBus, log_update

__all__ = [
    "Approve",
    "CopyTradeEngine",
    "CopyTradeStore",
    "ExecutionClient",
    "HealthReport",
    "LedgerSnapshot",
    "LedgerTotals",
    "OrderManager",
    "OrderRateLimiter",
    "PositionLedger",
    "Reject",
    "RestoredSession",
    "RiskDecision",
    "SessionController",
    "StaticTraderDirectory",
    "TraderResolver",
    "UpdateBus",
    "check_session_health",
    "evaluate_exit",
    "evaluate_risk",
    "log_update",
]
