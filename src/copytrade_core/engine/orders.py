"""OrderManager — drives copy orders through their lifecycle for one session."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog

from copytrade_core.config.schema import EngineConfig
from copytrade_core.engine.execution import ExecutionClient
from copytrade_core.engine.ledger import PositionLedger
from copytrade_core.engine.sizing import apply_simulated_slippage, calculate_slippage_bps
from copytrade_core.engine.updates import UpdateBus
from copytrade_core.errors import ExecutionError, LedgerIntegrityError, OrderIntegrityError
from copytrade_core.models.events import SourceTrade
from copytrade_core.models.order import OPEN_STATUSES, CopyTradeOrder, OrderKind
from copytrade_core.models.position import DUST_SHARES, ZERO
from copytrade_core.models.session import CopyTradeSession
from copytrade_core.models.updates import (
    BalanceUpdate,
    OrderCanceled,
    OrderFailed,
    OrderFilled,
    OrderPlaced,
    OrderSummary,
)

log = structlog.get_logger("orders")

_ALLOWED = {
    "pending": {"submitted", "simulated", "failed"},
    "submitted": {"partial", "filled", "failed", "canceled"},
    "partial": {"partial", "filled", "failed", "canceled"},
}

MAX_HISTORY_LIMIT = 200


class OrderManager:
    """Owns one session's orders: submission, fills, failures, cancels.

    Terminal failures are final — nothing here re-submits an order.
    """

    def __init__(
        self,
        session: CopyTradeSession,
        ledger: PositionLedger,
        bus: UpdateBus,
        engine_config: EngineConfig,
        execution: ExecutionClient | None = None,
        on_change: Callable[[CopyTradeOrder], None] | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.bus = bus
        self.engine_config = engine_config
        self.execution = execution
        self._on_change = on_change
        self._orders: dict[str, CopyTradeOrder] = {}
        self._reservations: dict[str, Decimal] = {}

    # ── Reads ─────────────────────────────────────────────────

    def get(self, order_id: str) -> CopyTradeOrder | None:
        return self._orders.get(order_id)

    def all_orders(self) -> list[CopyTradeOrder]:
        return list(self._orders.values())

    def open_orders(self) -> list[CopyTradeOrder]:
        return [o for o in self._orders.values() if o.status in OPEN_STATUSES]

    def history(self, limit: int = 50, offset: int = 0) -> list[CopyTradeOrder]:
        """Newest first, paginated; limit is capped at 200."""
        limit = max(0, min(limit, MAX_HISTORY_LIMIT))
        ordered = sorted(self._orders.values(), key=lambda o: o.created_at, reverse=True)
        return ordered[offset:offset + limit]

    def restore(self, order: CopyTradeOrder) -> None:
        self._orders[order.id] = order
        if order.status in OPEN_STATUSES and order.side == "buy" and not order.simulate:
            self._reserve(order, order.remaining_usdc)

    # ── Submission ────────────────────────────────────────────

    def submit(
        self,
        size_usdc: Decimal,
        trade: SourceTrade,
        *,
        kind: OrderKind = "mirror",
        size_shares: Decimal | None = None,
        close_out: bool = False,
    ) -> CopyTradeOrder:
        """Create a pending order for an approved mirror (or close) of *trade*."""
        now = datetime.now(timezone.utc)
        order = CopyTradeOrder(
            session_id=self.session.id,
            source_tx_hash=trade.tx_hash,
            source_trader=trade.trader,
            asset_id=trade.asset_id,
            side=trade.side,
            kind=kind,
            price=trade.price,
            source_price=trade.price,
            size_usdc=size_usdc,
            size_shares=size_shares,
            close_out=close_out,
            simulate=self.session.simulate,
            created_at=now,
            updated_at=now,
        )
        self._orders[order.id] = order
        self._changed(order)
        log.debug(
            "order_pending",
            session_id=self.session.id,
            order_id=order.id,
            kind=kind,
            asset_id=order.asset_id,
            side=order.side,
            size_usdc=float(size_usdc),
        )
        return order

    async def execute(self, order: CopyTradeOrder) -> CopyTradeOrder:
        """Run a pending order to its next resting state.

        Simulated sessions fill synthetically and never touch the venue.
        """
        if order.status != "pending":
            raise OrderIntegrityError(f"order {order.id} is {order.status}, expected pending")
        if self.session.simulate:
            return self._fill_simulated(order)
        if self.execution is None:
            return self.on_reject(order.id, "execution client not configured")

        self._transition(order, "submitted")
        self._publish_placed(order)
        order_type = self.session.config.order_type
        if order_type == "GTC" and order.side == "buy":
            self._reserve(order, order.size_usdc)

        try:
            report = await self.execution.submit_order(
                order.asset_id,
                order.side,
                order.size_usdc,
                self.session.config.max_slippage_bps,
                order_type,
                limit_price=order.price,
                size_shares=order.size_shares,
            )
        except ExecutionError as exc:
            return self.on_reject(order.id, str(exc))

        if order.is_terminal:
            # Canceled while the submission was in flight
            return order
        order.venue_order_id = report.venue_order_id

        if report.status == "matched":
            if report.fill_price is None:
                return self.on_reject(order.id, "matched without fill price")
            return self.on_fill(order.id, report.fill_price, report.filled_shares)
        if report.status == "live":
            if order_type != "GTC":
                return self.on_reject(order.id, "venue left FOK order resting")
            self._changed(order)
            log.info(
                "order_resting",
                session_id=self.session.id,
                order_id=order.id,
                venue_order_id=order.venue_order_id,
                asset_id=order.asset_id,
            )
            return order
        if order_type == "FOK":
            return self.on_reject(order.id, report.error or "fok_not_filled")
        return self.cancel(order.id, report.error or "unmatched")

    # ── Venue callbacks ───────────────────────────────────────

    def on_fill(
        self,
        order_id: str,
        fill_price: Decimal,
        filled_shares: Decimal,
    ) -> CopyTradeOrder:
        """Settle a fill report.

        Slippage protection is enforced here: a fill outside the session's
        tolerance fails the order and leaves the ledger untouched.
        """
        order = self._require(order_id)
        if order.status not in ("submitted", "partial"):
            raise OrderIntegrityError(
                f"fill reported for order {order_id} in status {order.status}"
            )
        if fill_price <= 0 or filled_shares < 0:
            raise OrderIntegrityError(
                f"invalid fill for order {order_id}: price={fill_price} shares={filled_shares}"
            )
        if filled_shares == 0:
            if self.session.config.order_type == "FOK":
                return self._fail(order, "fok_not_filled")
            return order

        slippage = calculate_slippage_bps(order.side, order.price, fill_price)
        if abs(slippage) > self.session.config.max_slippage_bps:
            order.slippage_bps = slippage
            return self._fail(order, "slippage_exceeded")

        if self.session.config.order_type == "FOK":
            status = "filled"
        else:
            cumulative = order.filled_shares + filled_shares
            status = "filled" if cumulative >= order.requested_shares - DUST_SHARES else "partial"
        return self._apply_fill(order, fill_price, filled_shares, status, slippage)

    def on_reject(self, order_id: str, reason: str) -> CopyTradeOrder:
        """Venue or pre-submission failure — terminal, ledger untouched."""
        order = self._require(order_id)
        if order.is_terminal:
            raise OrderIntegrityError(
                f"reject reported for order {order_id} already {order.status}"
            )
        return self._fail(order, reason)

    def cancel(self, order_id: str, reason: str) -> CopyTradeOrder:
        """Cancel a resting order. Partial fills already booked stay booked."""
        order = self._require(order_id)
        if order.status not in ("submitted", "partial"):
            raise OrderIntegrityError(f"cannot cancel order {order_id} in status {order.status}")
        self._transition(order, "canceled")
        order.error_message = reason
        self._release(order)
        self._changed(order)
        self.bus.publish(OrderCanceled(
            session_id=self.session.id,
            owner=self.session.owner,
            order_id=order.id,
            reason=reason,
        ))
        self._publish_balance()
        log.info(
            "order_canceled",
            session_id=self.session.id,
            order_id=order.id,
            reason=reason,
            filled_shares=float(order.filled_shares),
        )
        return order

    async def cancel_resting(
        self,
        reason: str,
        older_than: timedelta | None = None,
        now: datetime | None = None,
    ) -> list[CopyTradeOrder]:
        """Cancel resting GTC orders at the venue (optionally only stale ones)."""
        now = now or datetime.now(timezone.utc)
        candidates = [
            o for o in self.open_orders()
            if o.status in ("submitted", "partial")
            and o.venue_order_id is not None
            and (older_than is None or now - o.created_at > older_than)
        ]
        if not candidates or self.execution is None:
            return []
        try:
            canceled_ids = set(await self.execution.cancel_orders(
                [o.venue_order_id for o in candidates]
            ))
        except ExecutionError:
            log.exception("cancel_orders_failed", session_id=self.session.id, count=len(candidates))
            return []
        canceled = []
        for order in candidates:
            if order.venue_order_id in canceled_ids and order.status in ("submitted", "partial"):
                canceled.append(self.cancel(order.id, reason))
        return canceled

    # ── Internals ─────────────────────────────────────────────

    def _fill_simulated(self, order: CopyTradeOrder) -> CopyTradeOrder:
        fill_price = apply_simulated_slippage(
            order.side, order.source_price, self.session.config.simulated_slippage_bps,
        )
        slippage = calculate_slippage_bps(order.side, order.price, fill_price)
        if abs(slippage) > self.session.config.max_slippage_bps:
            order.slippage_bps = slippage
            return self._fail(order, "slippage_exceeded")
        if order.side == "buy":
            shares = order.size_usdc / fill_price
        else:
            shares = order.requested_shares
        self._publish_placed(order)
        return self._apply_fill(order, fill_price, shares, "simulated", slippage)

    def _apply_fill(
        self,
        order: CopyTradeOrder,
        fill_price: Decimal,
        shares: Decimal,
        status: str,
        slippage: Decimal,
    ) -> CopyTradeOrder:
        before = self.ledger.get(self.session.id, order.asset_id)
        sold_before = before.sell_shares if before is not None else ZERO
        try:
            pos = self.ledger.apply_fill(
                self.session.id,
                order.asset_id,
                order.side,
                shares,
                fill_price,
                close_out=order.close_out,
                source_trader=order.source_trader if order.kind == "mirror" else None,
            )
        except LedgerIntegrityError as exc:
            self._fail(order, f"ledger_rejected: {exc}")
            raise OrderIntegrityError(str(exc)) from exc

        if order.side == "sell":
            shares = pos.sell_shares - sold_before
        notional = shares * fill_price

        prev_usdc = order.filled_usdc
        order.filled_shares += shares
        order.filled_usdc = prev_usdc + notional
        order.fill_price = order.filled_usdc / order.filled_shares
        order.slippage_bps = calculate_slippage_bps(order.side, order.price, order.fill_price)

        if order.side == "buy":
            if status != "partial":
                order.size_shares = order.filled_shares
            self.session.remaining_capital -= notional
            self._consume_reservation(order, shares * order.price)
        else:
            self.session.remaining_capital += notional
        self._transition(order, status)
        if order.is_terminal:
            self._release(order)
        self.session.positions_value = self.ledger.positions_value(self.session.id)
        self.session.consecutive_failures = 0
        self.session.updated_at = order.updated_at
        self._changed(order)

        self.bus.publish(OrderFilled(
            session_id=self.session.id,
            owner=self.session.owner,
            order_id=order.id,
            fill_price=fill_price,
            filled_shares=shares,
            slippage_bps=slippage,
            partial=status == "partial",
        ))
        self._publish_balance()
        log.info(
            "order_filled",
            session_id=self.session.id,
            order_id=order.id,
            kind=order.kind,
            status=status,
            asset_id=order.asset_id,
            side=order.side,
            shares=float(shares),
            fill_price=float(fill_price),
            source_price=float(order.source_price),
            slippage_bps=float(slippage),
            remaining_capital=float(self.session.remaining_capital),
        )
        return order

    def _fail(self, order: CopyTradeOrder, reason: str) -> CopyTradeOrder:
        self._transition(order, "failed")
        order.error_message = reason
        self._release(order)
        self._changed(order)

        cfg = self.engine_config
        self.session.consecutive_failures += 1
        if self.session.consecutive_failures >= cfg.max_consecutive_failures:
            self.session.cooldown_until = order.updated_at + timedelta(seconds=cfg.cooldown_secs)
            log.warning(
                "session_cooldown",
                session_id=self.session.id,
                consecutive_failures=self.session.consecutive_failures,
                cooldown_secs=cfg.cooldown_secs,
            )

        self.bus.publish(OrderFailed(
            session_id=self.session.id,
            owner=self.session.owner,
            order_id=order.id,
            error=reason,
        ))
        log.warning(
            "order_failed",
            session_id=self.session.id,
            order_id=order.id,
            kind=order.kind,
            asset_id=order.asset_id,
            side=order.side,
            error=reason,
        )
        return order

    def _transition(self, order: CopyTradeOrder, status: str) -> None:
        if status not in _ALLOWED.get(order.status, ()):
            raise OrderIntegrityError(
                f"order {order.id}: illegal transition {order.status} -> {status}"
            )
        order.status = status
        order.updated_at = datetime.now(timezone.utc)

    def _reserve(self, order: CopyTradeOrder, amount: Decimal) -> None:
        if amount <= 0:
            return
        self._reservations[order.id] = amount
        self.session.reserved_usdc += amount

    def _consume_reservation(self, order: CopyTradeOrder, amount: Decimal) -> None:
        held = self._reservations.get(order.id)
        if held is None:
            return
        used = min(held, amount)
        self._reservations[order.id] = held - used
        self.session.reserved_usdc -= used

    def _release(self, order: CopyTradeOrder) -> None:
        held = self._reservations.pop(order.id, None)
        if held:
            self.session.reserved_usdc -= held

    def _require(self, order_id: str) -> CopyTradeOrder:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderIntegrityError(f"unknown order {order_id}")
        return order

    def _changed(self, order: CopyTradeOrder) -> None:
        if self._on_change is not None:
            self._on_change(order)

    def _publish_placed(self, order: CopyTradeOrder) -> None:
        self.bus.publish(OrderPlaced(
            session_id=self.session.id,
            owner=self.session.owner,
            order=OrderSummary(
                id=order.id,
                asset_id=order.asset_id,
                side=order.side,
                size_usdc=order.size_usdc,
                price=order.price,
                source_trader=order.source_trader,
                simulate=order.simulate,
            ),
        ))

    def _publish_balance(self) -> None:
        self.bus.publish(BalanceUpdate(
            session_id=self.session.id,
            owner=self.session.owner,
            remaining_capital=self.session.remaining_capital,
            positions_value=self.session.positions_value,
            reserved_usdc=self.session.reserved_usdc,
        ))
