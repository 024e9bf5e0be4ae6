"""Mirror sizing, slippage and exit math — pure functions, no state."""

from __future__ import annotations

from decimal import Decimal

BPS = Decimal("10000")
ZERO = Decimal("0")


def calculate_mirror_size(
    source_usdc: Decimal,
    copy_pct: Decimal,
    max_position_usdc: Decimal,
    asset_cost_basis: Decimal,
    headroom_usdc: Decimal,
) -> Decimal:
    """Size a mirror buy.

    size = min(source_usdc * copy_pct,
               max_position_usdc - asset_cost_basis,   (per-asset cap)
               headroom_usdc)                          (utilization cap)
    """
    asset_room = max_position_usdc - asset_cost_basis
    size = min(source_usdc * copy_pct, asset_room, headroom_usdc)
    return max(size, ZERO)


def calculate_utilization_headroom(
    remaining_capital: Decimal,
    positions_value: Decimal,
    reserved_usdc: Decimal,
    utilization_cap: Decimal,
) -> Decimal:
    """USDC that may still be committed without breaching the utilization cap.

    committed = positions_value + reserved_usdc
    allowed   = utilization_cap * (remaining_capital + positions_value)
    headroom  = min(allowed - committed, remaining_capital - reserved_usdc)
    """
    equity = remaining_capital + positions_value
    allowed = utilization_cap * equity
    headroom = allowed - positions_value - reserved_usdc
    cash = remaining_capital - reserved_usdc
    return max(min(headroom, cash), ZERO)


def calculate_mirror_close_shares(
    source_shares: Decimal,
    copy_pct: Decimal,
    held_shares: Decimal,
) -> tuple[Decimal, bool]:
    """Shares to sell when a source trader exits, and whether that is a full close.

    Mirrors the source's exit proportionally (``source_shares * copy_pct``),
    capped at what the session holds.
    """
    shares = source_shares * copy_pct
    if shares >= held_shares:
        return held_shares, True
    return shares, False


def calculate_slippage_bps(side: str, submitted_price: Decimal, fill_price: Decimal) -> Decimal:
    """Slippage of a fill against the submitted price, adverse = positive.

    BUY:  (fill - price) / price * 10000
    SELL: (price - fill) / price * 10000
    """
    if submitted_price == 0:
        return ZERO
    diff = fill_price - submitted_price
    if side == "sell":
        diff = -diff
    return diff / submitted_price * BPS


def apply_simulated_slippage(side: str, price: Decimal, slippage_bps: Decimal) -> Decimal:
    """Deterministic simulated fill price: buys pay more, sells receive less."""
    adj = slippage_bps / BPS
    if side == "buy":
        return price * (1 + adj)
    return price * (1 - adj)


def calculate_return_on_cost(unrealized_pnl: Decimal, cost_basis: Decimal) -> Decimal | None:
    """unrealized_pnl / cost_basis, or None when there is no cost basis."""
    if cost_basis <= 0:
        return None
    return unrealized_pnl / cost_basis


def exit_trigger(
    unrealized_pnl: Decimal,
    cost_basis: Decimal,
    take_profit_pct: Decimal | None,
    stop_loss_pct: Decimal | None,
) -> str | None:
    """Return ``"take_profit"``, ``"stop_loss"`` or None.

    Thresholds are whole percentages of cost basis. Stop-loss is checked first.
    """
    ratio = calculate_return_on_cost(unrealized_pnl, cost_basis)
    if ratio is None:
        return None
    if stop_loss_pct is not None and ratio <= -(stop_loss_pct / 100):
        return "stop_loss"
    if take_profit_pct is not None and ratio >= take_profit_pct / 100:
        return "take_profit"
    return None
