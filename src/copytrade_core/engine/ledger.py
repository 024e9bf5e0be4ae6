"""PositionLedger — authoritative per (session, asset) positions and P&L."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import structlog

from copytrade_core.errors import InsufficientShares, LedgerIntegrityError, PositionResolved
from copytrade_core.models.events import Side
from copytrade_core.models.position import ZERO, Position

log = structlog.get_logger("ledger")


@dataclass
class LedgerTotals:
    positions_value: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    open_positions: int = 0


@dataclass
class LedgerSnapshot:
    """Read-only copy of one session's positions plus totals."""

    session_id: str
    positions: dict[str, Position] = field(default_factory=dict)
    totals: LedgerTotals = field(default_factory=LedgerTotals)

    def position(self, asset_id: str) -> Position | None:
        return self.positions.get(asset_id)

    def holds(self, asset_id: str) -> bool:
        pos = self.positions.get(asset_id)
        return pos is not None and pos.is_open


class PositionLedger:
    """Positions for every session, mutated only through fills, marks and resolutions.

    This is the only state shared between sessions: a price mark or resolution
    for an asset is applied to every session holding it in one call.
    """

    def __init__(self) -> None:
        self._positions: dict[tuple[str, str], Position] = {}
        self._by_asset: dict[str, set[str]] = {}
        self._resolved: dict[str, Decimal] = {}

    # ── Reads ─────────────────────────────────────────────────

    def get(self, session_id: str, asset_id: str) -> Position | None:
        return self._positions.get((session_id, asset_id))

    def positions(self, session_id: str) -> list[Position]:
        return [p for (sid, _), p in self._positions.items() if sid == session_id]

    def sessions_holding(self, asset_id: str) -> list[str]:
        """Session ids with an open position in *asset_id*."""
        return sorted(
            sid for sid in self._by_asset.get(asset_id, ())
            if self._positions[(sid, asset_id)].is_open
        )

    def positions_value(self, session_id: str) -> Decimal:
        """Live mark of a session's held shares."""
        return sum((p.current_value for p in self.positions(session_id)), ZERO)

    def snapshot(self, session_id: str) -> LedgerSnapshot:
        """Aggregate a session's positions (deep copies, safe to hand out)."""
        snap = LedgerSnapshot(session_id=session_id)
        totals = snap.totals
        for pos in self.positions(session_id):
            snap.positions[pos.asset_id] = pos.model_copy(deep=True)
            totals.positions_value += pos.current_value
            totals.cost_basis += pos.cost_basis
            totals.realized_pnl += pos.realized_pnl
            totals.unrealized_pnl += pos.unrealized_pnl
            if pos.is_open:
                totals.open_positions += 1
        return snap

    # ── Mutations ─────────────────────────────────────────────

    def restore(self, position: Position) -> None:
        """Load a persisted position back into the ledger (startup only)."""
        key = (position.session_id, position.asset_id)
        self._positions[key] = position
        self._by_asset.setdefault(position.asset_id, set()).add(position.session_id)
        if position.resolved and position.payout_per_share is not None:
            self._resolved[position.asset_id] = position.payout_per_share

    def apply_fill(
        self,
        session_id: str,
        asset_id: str,
        side: Side,
        shares: Decimal,
        price: Decimal,
        *,
        close_out: bool = False,
        source_trader: str | None = None,
        ts: datetime | None = None,
    ) -> Position:
        """Apply one fill and return the updated position.

        Buys re-weight ``avg_entry_price``; sells book realized P&L against it.
        Selling more than is held raises InsufficientShares unless *close_out*
        is set, in which case the sell is clamped to close the position to zero.
        """
        if shares <= 0 or price <= 0:
            raise LedgerIntegrityError(
                f"invalid fill for {session_id}/{asset_id}: shares={shares} price={price}"
            )
        ts = ts or datetime.now(timezone.utc)
        key = (session_id, asset_id)
        pos = self._positions.get(key)

        if side == "buy":
            if asset_id in self._resolved:
                raise PositionResolved(f"{asset_id} has resolved; no further buys")
            if pos is None:
                pos = Position(session_id=session_id, asset_id=asset_id)
                self._positions[key] = pos
                self._by_asset.setdefault(asset_id, set()).add(session_id)
            held = pos.net_shares if pos.net_shares > 0 else ZERO
            if held == 0:
                pos.opened_at = ts
            pos.avg_entry_price = (held * pos.avg_entry_price + shares * price) / (held + shares)
            pos.buy_shares += shares
            pos.total_bought_usdc += shares * price
            if source_trader:
                pos.source_traders.add(source_trader)
        else:
            if pos is None:
                raise InsufficientShares(session_id, asset_id, ZERO, shares)
            if pos.resolved:
                raise PositionResolved(
                    f"{session_id}/{asset_id} has resolved; redeem instead of selling"
                )
            held = pos.net_shares
            if shares > held:
                if not close_out:
                    raise InsufficientShares(session_id, asset_id, held, shares)
                shares = held
            if shares <= 0:
                raise InsufficientShares(session_id, asset_id, held, shares)
            pos.realized_pnl += shares * (price - pos.avg_entry_price)
            pos.sell_shares += shares
            pos.total_sold_usdc += shares * price

        pos.last_fill_price = price
        if not pos.resolved:
            pos.current_price = price
            pos.price_updated_at = ts
        pos.order_count += 1
        pos.last_order_at = ts

        log.debug(
            "fill_applied",
            session_id=session_id,
            asset_id=asset_id,
            side=side,
            shares=str(shares),
            price=str(price),
            net_shares=str(pos.net_shares),
            avg_entry_price=str(pos.avg_entry_price),
            realized_pnl=str(pos.realized_pnl),
        )
        return pos

    def mark_price(self, asset_id: str, price: Decimal, ts: datetime | None = None) -> int:
        """Update the mark on every session's position in *asset_id*.

        Resolved positions keep their payout price. Returns positions updated.
        """
        ts = ts or datetime.now(timezone.utc)
        updated = 0
        for sid in self._by_asset.get(asset_id, ()):
            pos = self._positions[(sid, asset_id)]
            if pos.resolved:
                continue
            pos.current_price = price
            pos.price_updated_at = ts
            updated += 1
        return updated

    def mark_resolved(self, asset_id: str, payout_per_share: Decimal) -> list[Position]:
        """Book remaining shares as redeemed at *payout_per_share*.

        ``net_shares`` is unchanged; the shares are now only redeemable.
        Already-resolved positions are left alone.
        """
        self._resolved[asset_id] = payout_per_share
        touched: list[Position] = []
        for sid in sorted(self._by_asset.get(asset_id, ())):
            pos = self._positions[(sid, asset_id)]
            if pos.resolved:
                continue
            held = pos.net_shares if pos.net_shares > 0 else ZERO
            pos.realized_pnl += held * (payout_per_share - pos.avg_entry_price)
            pos.current_price = payout_per_share
            pos.payout_per_share = payout_per_share
            pos.resolved = True
            touched.append(pos)
            log.info(
                "position_resolved",
                session_id=sid,
                asset_id=asset_id,
                payout_per_share=str(payout_per_share),
                net_shares=str(held),
                realized_pnl=str(pos.realized_pnl),
            )
        return touched

    def redeem(self, session_id: str, asset_id: str) -> Decimal:
        """Redeem a resolved position; returns the USDC paid out.

        P&L was already booked by mark_resolved, so only share counts move.
        """
        pos = self._positions.get((session_id, asset_id))
        if pos is None or not pos.resolved:
            raise LedgerIntegrityError(f"{session_id}/{asset_id} is not a resolved position")
        if pos.redeemed:
            return ZERO
        held = pos.net_shares if pos.net_shares > 0 else ZERO
        payout = held * (pos.payout_per_share or ZERO)
        pos.sell_shares += held
        pos.total_sold_usdc += payout
        pos.redeemed = True
        pos.last_order_at = datetime.now(timezone.utc)
        log.info(
            "position_redeemed",
            session_id=session_id,
            asset_id=asset_id,
            shares=str(held),
            payout=str(payout),
        )
        return payout
