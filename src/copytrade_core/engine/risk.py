"""Risk gate — pure allow/deny/resize decision for a candidate mirror trade."""

from __future__ import annotations

from collections import deque
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Union

from copytrade_core.config.schema import EngineConfig
from copytrade_core.engine.ledger import LedgerSnapshot
from copytrade_core.engine.sizing import (
    calculate_mirror_close_shares,
    calculate_mirror_size,
    calculate_utilization_headroom,
)
from copytrade_core.models.events import SourceTrade
from copytrade_core.models.session import CopyTradeSession

# Reject reasons
SESSION_NOT_RUNNING = "session_not_running"
MAX_LOSS_BREACHED = "max_loss_breached"
COOLDOWN_ACTIVE = "cooldown_active"
DUPLICATE_SOURCE_TRADE = "duplicate_source_trade"
PRICE_OUT_OF_BAND = "price_out_of_band"
BELOW_MIN_SOURCE_USDC = "below_min_source_usdc"
MAX_OPEN_POSITIONS_REACHED = "max_open_positions_reached"
UTILIZATION_CAP_REACHED = "utilization_cap_reached"
MAX_POSITION_REACHED = "max_position_reached"
BELOW_MIN_ORDER_USDC = "below_min_order_usdc"
MIRROR_CLOSE_DISABLED = "mirror_close_disabled"
NO_POSITION = "no_position"
# Transient: the trade is not marked seen, so a redelivery can mirror it
RATE_LIMITED = "rate_limited"
ORDER_IN_FLIGHT = "order_in_flight"


@dataclass(frozen=True)
class Approve:
    """Mirror the trade. ``size_usdc`` for buys; ``size_shares`` for exits."""

    size_usdc: Decimal
    size_shares: Decimal | None = None
    close_out: bool = False


@dataclass(frozen=True)
class Reject:
    reason: str
    detail: str = ""


RiskDecision = Union[Approve, Reject]


class OrderRateLimiter:
    """Sliding one-minute window of mirror orders, shared by all sessions.

    Sessions trade through one exchange account, so the limit is global.
    """

    def __init__(self, max_per_minute: int) -> None:
        self.max_per_minute = max_per_minute
        self._stamps: deque[datetime] = deque()

    def allows(self, now: datetime) -> bool:
        """True if one more order fits in the window ending at *now*."""
        cutoff = now - timedelta(seconds=60)
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()
        return len(self._stamps) < self.max_per_minute

    def record(self, now: datetime) -> None:
        """Count an order that was actually submitted."""
        self._stamps.append(now)


# ── Pure check functions ──────────────────────────────────────


def check_session_running(session: CopyTradeSession) -> Reject | None:
    if session.status != "running":
        return Reject(SESSION_NOT_RUNNING, session.status)
    return None


def check_max_loss(session: CopyTradeSession, snapshot: LedgerSnapshot) -> Reject | None:
    """Circuit breaker on (positions_value + remaining_capital - initial) / initial."""
    limit = session.config.max_loss_pct
    if limit is None:
        return None
    initial = session.config.initial_capital
    equity = snapshot.totals.positions_value + session.remaining_capital
    ratio = (equity - initial) / initial
    if ratio <= -(limit / 100):
        return Reject(MAX_LOSS_BREACHED, f"return {float(ratio) * 100:.1f}% vs max loss {limit}%")
    return None


def check_cooldown(session: CopyTradeSession, now: datetime) -> Reject | None:
    if session.in_cooldown(now):
        return Reject(COOLDOWN_ACTIVE, f"until {session.cooldown_until.isoformat()}")
    return None


def check_duplicate(trade: SourceTrade, seen_tx_hashes: Collection[str]) -> Reject | None:
    if trade.tx_hash in seen_tx_hashes:
        return Reject(DUPLICATE_SOURCE_TRADE, trade.tx_hash)
    return None


def check_price_band(session: CopyTradeSession, trade: SourceTrade) -> Reject | None:
    cfg = session.config
    if trade.price < cfg.min_source_price or trade.price > cfg.max_source_price:
        return Reject(
            PRICE_OUT_OF_BAND,
            f"{trade.price} outside [{cfg.min_source_price}, {cfg.max_source_price}]",
        )
    return None


def check_min_source_usdc(session: CopyTradeSession, trade: SourceTrade) -> Reject | None:
    if trade.usdc_amount < session.config.min_source_usdc:
        return Reject(
            BELOW_MIN_SOURCE_USDC,
            f"{trade.usdc_amount} < {session.config.min_source_usdc}",
        )
    return None


def check_max_open_positions(
    session: CopyTradeSession,
    trade: SourceTrade,
    snapshot: LedgerSnapshot,
) -> Reject | None:
    """Reject if the trade would open a new asset beyond the limit."""
    if snapshot.holds(trade.asset_id):
        return None
    count = snapshot.totals.open_positions
    limit = session.config.max_open_positions
    if count >= limit:
        return Reject(MAX_OPEN_POSITIONS_REACHED, f"{count}/{limit}")
    return None


def evaluate_risk(
    session: CopyTradeSession,
    trade: SourceTrade,
    snapshot: LedgerSnapshot,
    seen_tx_hashes: Collection[str],
    now: datetime,
    engine_config: EngineConfig,
) -> RiskDecision:
    """Composite risk check for a source buy — first failing check wins.

    Order: status, max loss, cooldown, duplicate, price band, minimum
    notional, open-position count, utilization, sizing clamp.
    """
    for reject in (
        check_session_running(session),
        check_max_loss(session, snapshot),
        check_cooldown(session, now),
        check_duplicate(trade, seen_tx_hashes),
        check_price_band(session, trade),
        check_min_source_usdc(session, trade),
        check_max_open_positions(session, trade, snapshot),
    ):
        if reject is not None:
            return reject

    cfg = session.config
    min_order = engine_config.min_order_usdc
    headroom = calculate_utilization_headroom(
        remaining_capital=session.remaining_capital,
        positions_value=snapshot.totals.positions_value,
        reserved_usdc=session.reserved_usdc,
        utilization_cap=cfg.utilization_cap,
    )
    if headroom < min_order:
        return Reject(UTILIZATION_CAP_REACHED, f"headroom {headroom}")

    existing = snapshot.position(trade.asset_id)
    asset_cost = existing.cost_basis if existing is not None else Decimal("0")
    if asset_cost >= cfg.max_position_usdc:
        return Reject(MAX_POSITION_REACHED, f"{asset_cost}/{cfg.max_position_usdc}")

    size = calculate_mirror_size(
        source_usdc=trade.usdc_amount,
        copy_pct=cfg.copy_pct,
        max_position_usdc=cfg.max_position_usdc,
        asset_cost_basis=asset_cost,
        headroom_usdc=headroom,
    )
    if size < min_order:
        return Reject(BELOW_MIN_ORDER_USDC, f"{size} < {min_order}")
    return Approve(size_usdc=size)


def evaluate_exit(
    session: CopyTradeSession,
    trade: SourceTrade,
    snapshot: LedgerSnapshot,
    seen_tx_hashes: Collection[str],
) -> RiskDecision:
    """Decide whether a source sell should be mirrored as a (partial) close.

    Exits reduce risk, so they are never gated on capital or utilization.
    """
    for reject in (
        check_session_running(session),
        check_duplicate(trade, seen_tx_hashes),
    ):
        if reject is not None:
            return reject
    if not session.config.mirror_close:
        return Reject(MIRROR_CLOSE_DISABLED)

    pos = snapshot.position(trade.asset_id)
    if pos is None or not pos.is_open or pos.resolved:
        return Reject(NO_POSITION, trade.asset_id)
    if trade.trader not in pos.source_traders:
        return Reject(NO_POSITION, f"{trade.asset_id} not opened from {trade.trader}")

    shares, full = calculate_mirror_close_shares(
        source_shares=trade.shares,
        copy_pct=session.config.copy_pct,
        held_shares=pos.net_shares,
    )
    return Approve(size_usdc=shares * trade.price, size_shares=shares, close_out=full)
