"""Import all table modules so Base.metadata knows about them."""

from copytrade_core.db.tables.copytrade import OrderRow, PositionRow, SeenTradeRow, SessionRow

__all__ = ["OrderRow", "PositionRow", "SeenTradeRow", "SessionRow"]
