"""CopyTradeStore — persist sessions, orders and positions; reload on startup."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from copytrade_core.config.schema import SessionConfig
from copytrade_core.db.tables.copytrade import OrderRow, PositionRow, SeenTradeRow, SessionRow
from copytrade_core.models.order import CopyTradeOrder
from copytrade_core.models.position import Position
from copytrade_core.models.session import CopyTradeSession

log = structlog.get_logger("store")

_ORDER_FIELDS = (
    "session_id", "source_tx_hash", "source_trader", "asset_id", "side", "kind",
    "price", "source_price", "size_usdc", "size_shares", "filled_shares",
    "filled_usdc", "status", "fill_price", "slippage_bps", "error_message",
    "venue_order_id", "close_out", "simulate", "created_at", "updated_at",
)

_POSITION_FIELDS = (
    "buy_shares", "sell_shares", "avg_entry_price", "current_price",
    "last_fill_price", "realized_pnl", "total_bought_usdc", "total_sold_usdc",
    "resolved", "payout_per_share", "redeemed", "order_count", "opened_at",
    "last_order_at", "price_updated_at",
)


@dataclass
class RestoredSession:
    """Everything needed to bring one session back into the engine."""

    session: CopyTradeSession
    orders: list[CopyTradeOrder] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    seen_tx_hashes: set[str] = field(default_factory=set)


def _utc(ts: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _dec(value) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class CopyTradeStore:
    """Writes engine state to the copytrade schema; one ORM session per store."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Writes ────────────────────────────────────────────────

    def save_session(self, session: CopyTradeSession) -> None:
        row = self.db.get(SessionRow, session.id)
        if row is None:
            row = SessionRow(id=session.id, created_at=session.created_at)
            self.db.add(row)
        row.owner = session.owner
        row.status = session.status
        row.config = session.config.model_dump(mode="json")
        row.initial_capital = session.config.initial_capital
        row.remaining_capital = session.remaining_capital
        row.reserved_usdc = session.reserved_usdc
        row.traders = sorted(session.traders)
        row.consecutive_failures = session.consecutive_failures
        row.cooldown_until = session.cooldown_until
        row.stop_reason = session.stop_reason
        row.updated_at = session.updated_at
        self._commit()

    def save_order(self, order: CopyTradeOrder) -> None:
        row = self.db.get(OrderRow, order.id)
        if row is None:
            row = OrderRow(id=order.id)
            self.db.add(row)
        for name in _ORDER_FIELDS:
            setattr(row, name, getattr(order, name))
        self._commit()

    def save_positions(self, positions: Iterable[Position]) -> int:
        """Upsert positions by (session_id, asset_id). Returns rows written."""
        count = 0
        for pos in positions:
            row = self.db.execute(
                select(PositionRow).where(
                    PositionRow.session_id == pos.session_id,
                    PositionRow.asset_id == pos.asset_id,
                )
            ).scalar_one_or_none()
            if row is None:
                row = PositionRow(session_id=pos.session_id, asset_id=pos.asset_id)
                self.db.add(row)
            for name in _POSITION_FIELDS:
                setattr(row, name, getattr(pos, name))
            row.source_traders = sorted(pos.source_traders)
            count += 1
        self._commit()
        return count

    def save_seen(
        self,
        session_id: str,
        tx_hashes: Iterable[str],
        seen_at: datetime | None = None,
    ) -> int:
        """Append newly evaluated source tx hashes. Returns rows inserted."""
        seen_at = seen_at or datetime.now(timezone.utc)
        count = 0
        for tx_hash in sorted(set(tx_hashes)):
            if self.db.get(SeenTradeRow, (session_id, tx_hash)) is not None:
                continue
            self.db.add(SeenTradeRow(session_id=session_id, tx_hash=tx_hash, seen_at=seen_at))
            count += 1
        if count:
            self._commit()
        return count

    def _commit(self) -> None:
        # A failed flush leaves the ORM session unusable until rolled back
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ── Reads ─────────────────────────────────────────────────

    def load_active(self) -> list[RestoredSession]:
        """Load running and paused sessions with their orders and positions."""
        rows = self.db.execute(
            select(SessionRow)
            .where(SessionRow.status.in_(("running", "paused")))
            .order_by(SessionRow.created_at)
        ).scalars().all()

        restored: list[RestoredSession] = []
        for row in rows:
            session = CopyTradeSession(
                id=row.id,
                config=SessionConfig.model_validate(row.config),
                status=row.status,
                remaining_capital=_dec(row.remaining_capital),
                reserved_usdc=_dec(row.reserved_usdc) or Decimal("0"),
                traders=set(row.traders or []),
                consecutive_failures=row.consecutive_failures,
                cooldown_until=_utc(row.cooldown_until),
                stop_reason=row.stop_reason,
                created_at=_utc(row.created_at),
                updated_at=_utc(row.updated_at),
            )
            item = RestoredSession(
                session=session,
                orders=self._load_orders(row.id),
                positions=self._load_positions(row.id),
                seen_tx_hashes=self._load_seen(row.id),
            )
            restored.append(item)
            log.info(
                "session_restored",
                session_id=row.id,
                status=row.status,
                orders=len(item.orders),
                positions=len(item.positions),
            )
        return restored

    def _load_orders(self, session_id: str) -> list[CopyTradeOrder]:
        rows = self.db.execute(
            select(OrderRow)
            .where(OrderRow.session_id == session_id)
            .order_by(OrderRow.created_at)
        ).scalars().all()
        orders = []
        for row in rows:
            data = {name: getattr(row, name) for name in _ORDER_FIELDS}
            data["created_at"] = _utc(row.created_at)
            data["updated_at"] = _utc(row.updated_at)
            orders.append(CopyTradeOrder(id=row.id, **data))
        return orders

    def _load_positions(self, session_id: str) -> list[Position]:
        rows = self.db.execute(
            select(PositionRow).where(PositionRow.session_id == session_id)
        ).scalars().all()
        positions = []
        for row in rows:
            data = {name: getattr(row, name) for name in _POSITION_FIELDS}
            for name in ("opened_at", "last_order_at", "price_updated_at"):
                data[name] = _utc(data[name])
            positions.append(Position(
                session_id=row.session_id,
                asset_id=row.asset_id,
                source_traders=set(row.source_traders or []),
                **data,
            ))
        return positions

    def _load_seen(self, session_id: str) -> set[str]:
        return set(self.db.execute(
            select(SeenTradeRow.tx_hash).where(SeenTradeRow.session_id == session_id)
        ).scalars())
