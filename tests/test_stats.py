"""Tests for metric formulas and session stats."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from copytrade_core.engine.ledger import PositionLedger
from copytrade_core.metrics import (
    capital_utilization,
    compute_session_stats,
    return_pct,
    slippage_summary,
    summarize_sessions,
    win_rate,
)
from copytrade_core.models import CopyTradeOrder, create_session

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
D = Decimal


def _session(sid="s1", initial="1000", status="running"):
    session = create_session(
        {"top_n": 3, "copy_pct": "0.5", "max_position_usdc": "100", "initial_capital": initial},
        session_id=sid,
        now=NOW,
    )
    session.status = status
    return session


def _order(status, slippage=None, sid="s1"):
    return CopyTradeOrder(
        session_id=sid, source_tx_hash="0x1", source_trader="0xsrc", asset_id="tok",
        side="buy", price="0.5", source_price="0.5", size_usdc="10", status=status,
        slippage_bps=slippage, created_at=NOW, updated_at=NOW,
    )


class TestFormulas:
    def test_win_rate(self):
        assert win_rate(3, 4) == 75.0
        assert win_rate(0, 0) == 0.0

    def test_return_pct(self):
        assert return_pct(D("50"), D("1000")) == 5.0
        assert return_pct(D("-200"), D("1000")) == -20.0
        assert return_pct(D("10"), D("0")) == 0.0

    def test_capital_utilization(self):
        assert capital_utilization(D("250"), D("750")) == 0.25
        assert capital_utilization(D("0"), D("0")) == 0.0

    def test_slippage_summary(self):
        assert slippage_summary([]) == (0.0, 0.0)
        assert slippage_summary([10.0, 30.0, -10.0]) == (10.0, 30.0)


class TestSessionStats:
    def test_counts_orders_by_status(self):
        session = _session()
        orders = [
            _order("simulated", D("0")),
            _order("filled", D("40")),
            _order("failed"),
            _order("canceled"),
            _order("submitted"),
        ]
        stats = compute_session_stats(session, PositionLedger().snapshot("s1"), orders, now=NOW)
        assert stats.total_orders == 5
        assert stats.filled_orders == 2
        assert stats.failed_orders == 1
        assert stats.canceled_orders == 1
        assert stats.pending_orders == 1
        assert stats.avg_slippage_bps == 20.0
        assert stats.max_slippage_bps == 40.0

    def test_pnl_and_win_rate(self):
        ledger = PositionLedger()
        # Winner: closed at a profit
        ledger.apply_fill("s1", "win", "buy", D("100"), D("0.4"), source_trader="0xa")
        ledger.apply_fill("s1", "win", "sell", D("100"), D("0.6"), close_out=True)
        # Loser: resolved against us
        ledger.apply_fill("s1", "lose", "buy", D("50"), D("0.5"), source_trader="0xa")
        ledger.mark_resolved("lose", D("0"))
        # Still open, marked up
        ledger.apply_fill("s1", "open", "buy", D("10"), D("0.5"), source_trader="0xa")
        ledger.mark_price("open", D("0.7"))

        session = _session()
        session.remaining_capital = D("1000") + D("20") - D("25") - D("5")
        session.positions_value = ledger.positions_value("s1")

        stats = compute_session_stats(session, ledger.snapshot("s1"), [], now=NOW)
        assert stats.realized_pnl == D("-5")
        assert stats.unrealized_pnl == D("2")
        assert stats.total_pnl == D("-3")
        assert stats.return_pct == -0.3
        assert stats.win_count == 1
        assert stats.loss_count == 1
        assert stats.win_rate == 50.0
        assert stats.open_positions == 1
        assert stats.total_invested == D("70")

    def test_runtime(self):
        stats = compute_session_stats(
            _session(), PositionLedger().snapshot("s1"), [], now=NOW + timedelta(minutes=5),
        )
        assert stats.runtime_seconds == 300.0


class TestSummary:
    def test_totals_across_sessions(self):
        a = _session("a")
        b = _session("b", initial="3000", status="stopped")
        ledger = PositionLedger()
        ledger.apply_fill("a", "tok", "buy", D("100"), D("0.5"), source_trader="0xa")
        ledger.mark_price("tok", D("0.9"))
        stats = [
            compute_session_stats(a, ledger.snapshot("a"), [_order("simulated", sid="a")], now=NOW),
            compute_session_stats(b, ledger.snapshot("b"), [], now=NOW),
        ]
        totals = summarize_sessions([a, b], stats)
        assert totals.total_sessions == 2
        assert totals.active_sessions == 1
        assert totals.total_pnl == D("40")
        assert totals.total_return_pct == 1.0
        assert totals.total_orders == 1
