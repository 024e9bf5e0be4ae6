"""Session stats — read-only rollups over a ledger snapshot and order history."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from copytrade_core.engine.ledger import LedgerSnapshot
from copytrade_core.metrics.formulas import (
    ZERO,
    capital_utilization,
    return_pct,
    slippage_summary,
    win_rate,
)
from copytrade_core.models.order import FILLED_STATUSES, OPEN_STATUSES, CopyTradeOrder
from copytrade_core.models.session import CopyTradeSession


@dataclass
class SessionStats:
    """Aggregated figures for one session."""

    session_id: str
    status: str
    total_orders: int = 0
    filled_orders: int = 0
    failed_orders: int = 0
    pending_orders: int = 0
    canceled_orders: int = 0
    total_invested: Decimal = ZERO
    total_returned: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    total_pnl: Decimal = ZERO
    return_pct: float = 0.0
    open_positions: int = 0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0
    avg_slippage_bps: float = 0.0
    max_slippage_bps: float = 0.0
    capital_utilization: float = 0.0
    runtime_seconds: float = 0.0


@dataclass
class SessionsSummary:
    active_sessions: int = 0
    total_sessions: int = 0
    total_pnl: Decimal = ZERO
    total_return_pct: float = 0.0
    total_orders: int = 0


def compute_session_stats(
    session: CopyTradeSession,
    snapshot: LedgerSnapshot,
    orders: Iterable[CopyTradeOrder],
    now: datetime | None = None,
) -> SessionStats:
    """Project one session's stats. Pure: reads its inputs only.

    Win rate counts closed (or resolved) positions only: a win is positive
    realized P&L, a loss negative; flat closes count towards neither.
    """
    now = now or datetime.now(timezone.utc)
    stats = SessionStats(session_id=session.id, status=session.status)

    slippages: list[float] = []
    for order in orders:
        stats.total_orders += 1
        if order.status in FILLED_STATUSES:
            stats.filled_orders += 1
            if order.slippage_bps is not None:
                slippages.append(float(order.slippage_bps))
        elif order.status == "failed":
            stats.failed_orders += 1
        elif order.status == "canceled":
            stats.canceled_orders += 1
        elif order.status in OPEN_STATUSES:
            stats.pending_orders += 1
    stats.avg_slippage_bps, stats.max_slippage_bps = slippage_summary(slippages)

    positions_value = ZERO
    for pos in snapshot.positions.values():
        stats.total_invested += pos.total_bought_usdc
        stats.total_returned += pos.total_sold_usdc
        stats.realized_pnl += pos.realized_pnl
        stats.unrealized_pnl += pos.unrealized_pnl
        positions_value += pos.current_value
        if pos.is_open and not pos.resolved:
            stats.open_positions += 1
            continue
        if pos.realized_pnl > 0:
            stats.win_count += 1
        elif pos.realized_pnl < 0:
            stats.loss_count += 1

    stats.total_pnl = stats.realized_pnl + stats.unrealized_pnl
    stats.return_pct = return_pct(stats.total_pnl, session.config.initial_capital)
    stats.win_rate = win_rate(stats.win_count, stats.win_count + stats.loss_count)
    stats.capital_utilization = capital_utilization(positions_value, session.remaining_capital)
    stats.runtime_seconds = max((now - session.created_at).total_seconds(), 0.0)
    return stats


def summarize_sessions(
    sessions: Iterable[CopyTradeSession],
    stats: Iterable[SessionStats],
) -> SessionsSummary:
    """Cross-session totals; return is measured against summed initial capital."""
    summary = SessionsSummary()
    initial = ZERO
    for session in sessions:
        summary.total_sessions += 1
        initial += session.config.initial_capital
        if session.status == "running":
            summary.active_sessions += 1
    for item in stats:
        summary.total_pnl += item.total_pnl
        summary.total_orders += item.total_orders
    summary.total_return_pct = return_pct(summary.total_pnl, initial)
    return summary
