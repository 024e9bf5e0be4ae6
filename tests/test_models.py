"""Tests for Pydantic domain models."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from copytrade_core.errors import SessionValidationError
from copytrade_core.models import (
    BalanceUpdate,
    CopyTradeOrder,
    OrderFilled,
    Position,
    SessionStopped,
    SourceTrade,
    create_session,
    parse_update,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

BASE = {
    "list_id": "whales",
    "copy_pct": "0.1",
    "max_position_usdc": "50",
    "initial_capital": "500",
}


class TestCreateSession:
    def test_valid_session_starts_running(self):
        s = create_session(BASE, now=NOW)
        assert s.status == "running"
        assert s.remaining_capital == Decimal("500")
        assert s.positions_value == 0
        assert s.created_at == NOW
        assert len(s.id) == 32

    def test_explicit_id(self):
        s = create_session(BASE, session_id="abc")
        assert s.id == "abc"

    def test_both_sources_rejected(self):
        with pytest.raises(SessionValidationError, match="not both"):
            create_session({**BASE, "top_n": 10})

    def test_negative_capital_rejected(self):
        with pytest.raises(SessionValidationError):
            create_session({**BASE, "initial_capital": "-1"})

    def test_live_session_needs_wallet(self):
        with pytest.raises(SessionValidationError, match="credentials"):
            create_session({**BASE, "simulate": False})

    def test_live_session_with_wallet(self):
        s = create_session({**BASE, "simulate": False}, has_credentialed_wallet=True)
        assert s.simulate is False

    def test_return_ratio(self):
        s = create_session(BASE)
        s.remaining_capital = Decimal("400")
        s.positions_value = Decimal("150")
        assert s.equity == Decimal("550")
        assert s.return_ratio == Decimal("0.1")

    def test_available_capital_excludes_reservations(self):
        s = create_session(BASE)
        s.reserved_usdc = Decimal("120")
        assert s.available_capital == Decimal("380")


class TestPosition:
    def test_open_position_values(self):
        p = Position(
            session_id="s", asset_id="a",
            buy_shares=Decimal("100"), sell_shares=Decimal("40"),
            avg_entry_price=Decimal("0.5"), current_price=Decimal("0.6"),
        )
        assert p.net_shares == Decimal("60")
        assert p.cost_basis == Decimal("30.0")
        assert p.current_value == Decimal("36.0")
        assert p.unrealized_pnl == Decimal("6.0")
        assert p.is_open

    def test_dust_counts_as_closed(self):
        p = Position(session_id="s", asset_id="a", buy_shares=Decimal("10"), sell_shares=Decimal("9.9995"))
        assert p.is_closed

    def test_resolved_has_no_unrealized(self):
        p = Position(
            session_id="s", asset_id="a",
            buy_shares=Decimal("10"), avg_entry_price=Decimal("0.4"),
            current_price=Decimal("1"), resolved=True, payout_per_share=Decimal("1"),
        )
        assert p.unrealized_pnl == 0
        assert p.current_value == Decimal("10")


class TestSourceTrade:
    def test_normalizes_trader_and_side(self):
        t = SourceTrade(
            tx_hash="0x1", trader="0xABCdef", asset_id="a", side="BUY",
            usdc_amount="100", price="0.5", timestamp=NOW,
        )
        assert t.trader == "0xabcdef"
        assert t.side == "buy"
        assert t.shares == Decimal("200")

    def test_rejects_zero_price(self):
        with pytest.raises(ValidationError):
            SourceTrade(
                tx_hash="0x1", trader="0xa", asset_id="a", side="buy",
                usdc_amount="100", price="0", timestamp=NOW,
            )


class TestCopyTradeOrder:
    def _order(self, **kw):
        data = dict(
            session_id="s", source_tx_hash="0x1", source_trader="0xa", asset_id="a",
            side="buy", price=Decimal("0.5"), source_price=Decimal("0.5"),
            size_usdc=Decimal("10"), created_at=NOW, updated_at=NOW,
        )
        data.update(kw)
        return CopyTradeOrder(**data)

    def test_requested_shares_implied_for_buys(self):
        assert self._order().requested_shares == Decimal("20")

    def test_requested_shares_explicit(self):
        assert self._order(side="sell", size_shares=Decimal("7")).requested_shares == Decimal("7")

    def test_remaining_usdc(self):
        o = self._order(filled_shares=Decimal("5"))
        assert o.remaining_usdc == Decimal("7.5")

    def test_terminal_statuses(self):
        assert self._order(status="simulated").is_terminal
        assert not self._order(status="partial").is_terminal


class TestUpdates:
    def test_round_trip_by_type(self):
        u = OrderFilled(
            session_id="s", owner="o", order_id="x",
            fill_price=Decimal("0.5"), filled_shares=Decimal("2"), slippage_bps=Decimal("0"),
        )
        parsed = parse_update(u.model_dump(mode="json"))
        assert isinstance(parsed, OrderFilled)
        assert parsed.filled_shares == Decimal("2")

    def test_discriminator_selects_variant(self):
        parsed = parse_update({
            "type": "session_stopped", "session_id": "s", "owner": "o",
            "reason": "max_loss_breached", "auto": True,
        })
        assert isinstance(parsed, SessionStopped)
        assert parsed.auto is True

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_update({"type": "nope", "session_id": "s", "owner": "o"})

    def test_balance_update_fields(self):
        u = BalanceUpdate(
            session_id="s", owner="o",
            remaining_capital=Decimal("1"), positions_value=Decimal("2"), reserved_usdc=Decimal("0"),
        )
        assert u.type == "balance_update"
