"""Session metrics — pure formulas and stats rollups."""

from copytrade_core.metrics.formulas import (
    capital_utilization,
    return_pct,
    slippage_summary,
    win_rate,
)
from copytrade_core.metrics.stats import (
    SessionStats,
    SessionsSummary,
    compute_session_stats,
    summarize_sessions,
)

__all__ = [
    "SessionStats",
    "SessionsSummary",
    "capital_utilization",
    "compute_session_stats",
    "return_pct",
    "slippage_summary",
    "summarize_sessions",
    "win_rate",
]
