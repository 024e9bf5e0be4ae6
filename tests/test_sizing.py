"""Tests for mirror sizing, slippage and exit math."""

from __future__ import annotations

from decimal import Decimal

from copytrade_core.engine.sizing import (
    apply_simulated_slippage,
    calculate_mirror_close_shares,
    calculate_mirror_size,
    calculate_return_on_cost,
    calculate_slippage_bps,
    calculate_utilization_headroom,
    exit_trigger,
)

D = Decimal


class TestMirrorSize:
    def test_copy_pct_of_source(self):
        assert calculate_mirror_size(D("100"), D("0.1"), D("50"), D("0"), D("1000")) == D("10.0")

    def test_clamped_by_position_cap(self):
        assert calculate_mirror_size(D("300"), D("0.5"), D("100"), D("0"), D("1000")) == D("100")

    def test_existing_cost_reduces_room(self):
        assert calculate_mirror_size(D("300"), D("0.5"), D("100"), D("70"), D("1000")) == D("30")

    def test_clamped_by_headroom(self):
        assert calculate_mirror_size(D("300"), D("0.5"), D("100"), D("0"), D("12")) == D("12")

    def test_never_negative(self):
        assert calculate_mirror_size(D("300"), D("0.5"), D("100"), D("150"), D("1000")) == 0


class TestUtilizationHeadroom:
    def test_full_cap_is_cash(self):
        h = calculate_utilization_headroom(D("800"), D("200"), D("0"), D("1"))
        assert h == D("800")

    def test_partial_cap(self):
        # 50% of 1000 equity = 500 allowed, 200 committed
        h = calculate_utilization_headroom(D("800"), D("200"), D("0"), D("0.5"))
        assert h == D("300.0")

    def test_reservations_count_as_committed(self):
        h = calculate_utilization_headroom(D("800"), D("200"), D("100"), D("0.5"))
        assert h == D("200.0")

    def test_over_cap_is_zero(self):
        h = calculate_utilization_headroom(D("100"), D("900"), D("0"), D("0.5"))
        assert h == 0


class TestMirrorClose:
    def test_proportional_partial(self):
        shares, full = calculate_mirror_close_shares(D("100"), D("0.1"), D("50"))
        assert shares == D("10.0")
        assert full is False

    def test_capped_at_held(self):
        shares, full = calculate_mirror_close_shares(D("1000"), D("0.1"), D("50"))
        assert shares == D("50")
        assert full is True


class TestSlippage:
    def test_buy_adverse_is_positive(self):
        assert calculate_slippage_bps("buy", D("0.50"), D("0.51")) == D("200")

    def test_sell_adverse_is_positive(self):
        assert calculate_slippage_bps("sell", D("0.50"), D("0.49")) == D("200")

    def test_favorable_is_negative(self):
        assert calculate_slippage_bps("buy", D("0.50"), D("0.49")) == D("-200")

    def test_zero_price(self):
        assert calculate_slippage_bps("buy", D("0"), D("0.5")) == 0

    def test_simulated_slippage_direction(self):
        assert apply_simulated_slippage("buy", D("0.50"), D("100")) == D("0.505")
        assert apply_simulated_slippage("sell", D("0.50"), D("100")) == D("0.495")

    def test_zero_simulated_slippage(self):
        assert apply_simulated_slippage("buy", D("0.42"), D("0")) == D("0.42")


class TestExitTrigger:
    def test_take_profit(self):
        assert exit_trigger(D("30"), D("100"), D("25"), None) == "take_profit"

    def test_stop_loss(self):
        assert exit_trigger(D("-20"), D("100"), D("25"), D("15")) == "stop_loss"

    def test_inside_band(self):
        assert exit_trigger(D("10"), D("100"), D("25"), D("15")) is None

    def test_no_cost_basis(self):
        assert calculate_return_on_cost(D("5"), D("0")) is None
        assert exit_trigger(D("5"), D("0"), D("1"), D("1")) is None
