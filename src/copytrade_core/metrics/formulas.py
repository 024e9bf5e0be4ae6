"""Pure metric computation functions — no engine state, no DB."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

import numpy as np

ZERO = Decimal("0")


def win_rate(wins: int, total: int) -> float:
    """Win rate as a percentage 0-100."""
    if total <= 0:
        return 0.0
    return wins / total * 100


def return_pct(total_pnl: Decimal, initial_capital: Decimal) -> float:
    """Total P&L as a percentage of initial capital."""
    if initial_capital <= 0:
        return 0.0
    return float(total_pnl / initial_capital * 100)


def capital_utilization(positions_value: Decimal, remaining_capital: Decimal) -> float:
    """Share of equity held in positions, 0-1."""
    equity = positions_value + remaining_capital
    if equity <= 0:
        return 0.0
    return float(positions_value / equity)


def slippage_summary(slippages_bps: Sequence[float]) -> tuple[float, float]:
    """(mean, max) of filled-order slippage in bps; adverse is positive."""
    if len(slippages_bps) == 0:
        return 0.0, 0.0
    arr = np.array(slippages_bps, dtype=np.float64)
    return float(np.mean(arr)), float(np.max(arr))

