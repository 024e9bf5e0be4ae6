"""SessionController — one session's state machine and event handling."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import structlog

from copytrade_core.config.schema import EngineConfig
from copytrade_core.engine.execution import ExecutionClient
from copytrade_core.engine.ledger import PositionLedger
from copytrade_core.engine.orders import OrderManager
from copytrade_core.engine.risk import (
    BELOW_MIN_ORDER_USDC,
    MAX_LOSS_BREACHED,
    ORDER_IN_FLIGHT,
    RATE_LIMITED,
    UTILIZATION_CAP_REACHED,
    Approve,
    OrderRateLimiter,
    Reject,
    check_max_loss,
    evaluate_exit,
    evaluate_risk,
)
from copytrade_core.engine.sizing import exit_trigger
from copytrade_core.engine.updates import UpdateBus
from copytrade_core.errors import InvalidTransition, LedgerIntegrityError, PositionResolved
from copytrade_core.models.events import SourceTrade
from copytrade_core.models.order import CopyTradeOrder
from copytrade_core.models.session import CopyTradeSession
from copytrade_core.models.updates import (
    BalanceUpdate,
    SessionPaused,
    SessionResumed,
    SessionStopped,
)

log = structlog.get_logger("session_controller")

INSUFFICIENT_CAPITAL = "insufficient_capital"


class SessionController:
    """Dispatches a session's events to the risk gate and order manager.

    Callers must serialize calls per session (the engine runs one worker per
    session); status changes via pause/resume/stop may happen at any time.
    """

    def __init__(
        self,
        session: CopyTradeSession,
        ledger: PositionLedger,
        bus: UpdateBus,
        engine_config: EngineConfig,
        *,
        execution: ExecutionClient | None = None,
        rate_limiter: OrderRateLimiter | None = None,
        on_order_change=None,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.bus = bus
        self.engine_config = engine_config
        self.rate_limiter = rate_limiter
        self.orders = OrderManager(
            session, ledger, bus, engine_config,
            execution=execution, on_change=on_order_change,
        )
        # Source tx hashes already handled by this session
        self._seen: set[str] = set()
        # Subset of _seen not yet written to the store
        self._unsaved_seen: set[str] = set()

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def status(self) -> str:
        return self.session.status

    @property
    def seen_tx_hashes(self) -> frozenset[str]:
        return frozenset(self._seen)

    @property
    def unsaved_tx_hashes(self) -> frozenset[str]:
        return frozenset(self._unsaved_seen)

    def mark_seen(self, tx_hashes) -> None:
        """Load already-persisted hashes (restore)."""
        self._seen.update(tx_hashes)

    def mark_saved(self, tx_hashes) -> None:
        self._unsaved_seen.difference_update(tx_hashes)

    def refresh_marks(self) -> None:
        self.session.positions_value = self.ledger.positions_value(self.session.id)

    # ── Source events ─────────────────────────────────────────

    async def on_source_trade(
        self,
        trade: SourceTrade,
        now: datetime | None = None,
    ) -> CopyTradeOrder | None:
        """Mirror a source trade if the session and risk gate allow it."""
        if self.session.status != "running":
            return None
        if trade.trader not in self.session.traders:
            return None
        now = now or datetime.now(timezone.utc)
        if trade.side == "sell":
            return await self.on_source_exit(trade, now)

        self.refresh_marks()
        snapshot = self.ledger.snapshot(self.session.id)
        decision = evaluate_risk(
            self.session, trade, snapshot, self._seen, now, self.engine_config,
        )
        self._remember(trade.tx_hash)

        if isinstance(decision, Reject):
            self._log_skip(trade, decision)
            if decision.reason == MAX_LOSS_BREACHED:
                self.stop(MAX_LOSS_BREACHED, auto=True)
            elif (
                decision.reason in (UTILIZATION_CAP_REACHED, BELOW_MIN_ORDER_USDC)
                and self.session.available_capital < self.engine_config.min_order_usdc
            ):
                self.pause(reason=INSUFFICIENT_CAPITAL)
            return None
        return await self._mirror(trade, decision, "mirror", now)

    async def on_source_exit(
        self,
        trade: SourceTrade,
        now: datetime | None = None,
    ) -> CopyTradeOrder | None:
        """Mirror a source trader's sell proportionally, if mirror-close is on."""
        snapshot = self.ledger.snapshot(self.session.id)
        decision = evaluate_exit(self.session, trade, snapshot, self._seen)
        self._remember(trade.tx_hash)
        if isinstance(decision, Reject):
            self._log_skip(trade, decision)
            return None
        return await self._mirror(trade, decision, "mirror_close", now or datetime.now(timezone.utc))

    async def on_exit_check(self, asset_id: str, current_price: Decimal) -> CopyTradeOrder | None:
        """Fire take-profit / stop-loss for the session's position in *asset_id*.

        The close bypasses risk-gate sizing: it sells the full position.
        """
        if self.session.status == "stopped":
            return None
        cfg = self.session.config
        if cfg.take_profit_pct is None and cfg.stop_loss_pct is None:
            return None
        pos = self.ledger.get(self.session.id, asset_id)
        if pos is None or not pos.is_open or pos.resolved or current_price <= 0:
            return None
        if any(o.asset_id == asset_id and o.side == "sell" for o in self.orders.open_orders()):
            return None

        net = pos.net_shares
        unrealized = net * current_price - pos.cost_basis
        trigger = exit_trigger(unrealized, pos.cost_basis, cfg.take_profit_pct, cfg.stop_loss_pct)
        if trigger is None:
            return None

        log.info(
            "exit_triggered",
            session_id=self.session.id,
            asset_id=asset_id,
            trigger=trigger,
            current_price=float(current_price),
            avg_entry_price=float(pos.avg_entry_price),
            net_shares=float(net),
        )
        return await self._close(asset_id, net, current_price, kind=trigger)

    async def close_position(self, asset_id: str) -> CopyTradeOrder:
        """Manually close a position at its last mark. Allowed in any status."""
        pos = self.ledger.get(self.session.id, asset_id)
        if pos is None or not pos.is_open:
            raise LedgerIntegrityError(f"no shares to close for {self.session.id}/{asset_id}")
        if pos.resolved:
            raise PositionResolved(f"{asset_id} has resolved; redeem instead of selling")
        price = pos.current_price if pos.current_price > 0 else pos.last_fill_price
        if price <= 0:
            raise LedgerIntegrityError(f"no price available to close {asset_id}")
        return await self._close(asset_id, pos.net_shares, price, kind="manual_close")

    def redeem(self, asset_id: str) -> Decimal:
        """Redeem a resolved position into cash. Allowed in any status."""
        payout = self.ledger.redeem(self.session.id, asset_id)
        self.session.remaining_capital += payout
        self.refresh_marks()
        self._touch()
        self.bus.publish(BalanceUpdate(
            session_id=self.session.id,
            owner=self.session.owner,
            remaining_capital=self.session.remaining_capital,
            positions_value=self.session.positions_value,
            reserved_usdc=self.session.reserved_usdc,
        ))
        return payout

    async def _close(
        self,
        asset_id: str,
        shares: Decimal,
        price: Decimal,
        kind: str,
    ) -> CopyTradeOrder:
        now = datetime.now(timezone.utc)
        trade = SourceTrade(
            tx_hash=f"{kind}:{asset_id}:{uuid.uuid4().hex[:12]}",
            trader=self.session.owner,
            asset_id=asset_id,
            side="sell",
            usdc_amount=shares * price,
            price=price,
            timestamp=now,
        )
        order = self.orders.submit(
            shares * price, trade, kind=kind, size_shares=shares, close_out=True,
        )
        return await self.orders.execute(order)

    # ── Lifecycle ─────────────────────────────────────────────

    def pause(self, reason: str | None = None) -> None:
        if self.session.status != "running":
            raise InvalidTransition(self.session.id, self.session.status, "pause")
        self.session.status = "paused"
        self._touch()
        self.bus.publish(SessionPaused(
            session_id=self.session.id, owner=self.session.owner, reason=reason,
        ))
        log.info("session_paused", session_id=self.session.id, reason=reason)

    def resume(self, traders: set[str] | None = None) -> None:
        """Resume a paused session, optionally with a refreshed trader set."""
        if self.session.status != "paused":
            raise InvalidTransition(self.session.id, self.session.status, "resume")
        if traders is not None:
            self.session.traders = set(traders)
        self.session.status = "running"
        self.session.consecutive_failures = 0
        self.session.cooldown_until = None
        self._touch()
        self.bus.publish(SessionResumed(session_id=self.session.id, owner=self.session.owner))
        log.info("session_resumed", session_id=self.session.id, traders=len(self.session.traders))

    def stop(self, reason: str = "user", auto: bool = False) -> None:
        """Stop for good. An order already in flight may still settle."""
        if self.session.status == "stopped":
            raise InvalidTransition(self.session.id, self.session.status, "stop")
        self.session.status = "stopped"
        self.session.stop_reason = reason
        self._touch()
        self.bus.publish(SessionStopped(
            session_id=self.session.id, owner=self.session.owner, reason=reason, auto=auto,
        ))
        if auto:
            log.error(
                "session_auto_stopped",
                session_id=self.session.id,
                reason=reason,
                remaining_capital=float(self.session.remaining_capital),
                positions_value=float(self.session.positions_value),
            )
        else:
            log.info("session_stopped", session_id=self.session.id, reason=reason)

    def check_circuit_breaker(self) -> bool:
        """Stop the session if its loss exceeds max_loss_pct. True if it tripped."""
        if self.session.status == "stopped":
            return False
        self.refresh_marks()
        reject = check_max_loss(self.session, self.ledger.snapshot(self.session.id))
        if reject is None:
            return False
        log.warning("circuit_breaker_tripped", session_id=self.session.id, detail=reject.detail)
        self.stop(MAX_LOSS_BREACHED, auto=True)
        return True

    # ── Helpers ───────────────────────────────────────────────

    async def _mirror(
        self,
        trade: SourceTrade,
        decision: Approve,
        kind: str,
        now: datetime,
    ) -> CopyTradeOrder | None:
        """Submit an approved mirror unless an order is open or the rate limit is spent.

        Either skip is transient: the trade is forgotten so a redelivery is
        evaluated again.
        """
        reason = None
        if self.orders.open_orders():
            reason = ORDER_IN_FLIGHT
        elif self.rate_limiter is not None and not self.rate_limiter.allows(now):
            reason = RATE_LIMITED
        if reason is not None:
            self._forget(trade.tx_hash)
            log.warning(
                "mirror_skipped",
                session_id=self.session.id,
                tx_hash=trade.tx_hash,
                asset_id=trade.asset_id,
                side=trade.side,
                reason=reason,
            )
            return None

        order = self.orders.submit(
            decision.size_usdc,
            trade,
            kind=kind,
            size_shares=decision.size_shares,
            close_out=decision.close_out,
        )
        if self.rate_limiter is not None:
            self.rate_limiter.record(now)
        return await self.orders.execute(order)

    def _remember(self, tx_hash: str) -> None:
        self._seen.add(tx_hash)
        self._unsaved_seen.add(tx_hash)

    def _forget(self, tx_hash: str) -> None:
        self._seen.discard(tx_hash)
        self._unsaved_seen.discard(tx_hash)

    def _log_skip(self, trade: SourceTrade, decision: Reject) -> None:
        log.info(
            "mirror_skipped",
            session_id=self.session.id,
            tx_hash=trade.tx_hash,
            trader=trade.trader,
            asset_id=trade.asset_id,
            side=trade.side,
            usdc_amount=float(trade.usdc_amount),
            reason=decision.reason,
            detail=decision.detail,
        )

    def _touch(self) -> None:
        self.session.updated_at = datetime.now(timezone.utc)
