"""CopyTradeEngine — routes events to per-session workers on one asyncio loop."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from copytrade_core.config.schema import EngineConfig, SessionConfig
from copytrade_core.engine.controller import SessionController
from copytrade_core.engine.execution import ExecutionClient
from copytrade_core.engine.health import HealthReport, check_session_health
from copytrade_core.engine.ledger import PositionLedger
from copytrade_core.engine.risk import OrderRateLimiter
from copytrade_core.engine.store import CopyTradeStore
from copytrade_core.engine.traders import TraderResolver
from copytrade_core.engine.updates import UpdateBus
from copytrade_core.errors import OrderIntegrityError, SessionNotFound, SessionValidationError
from copytrade_core.logging.setup import bind_session_context
from copytrade_core.models.events import PriceTick, Resolution, SourceTrade
from copytrade_core.models.order import CopyTradeOrder
from copytrade_core.models.session import CopyTradeSession, create_session

log = structlog.get_logger("copytrade_engine")

_SHUTDOWN = object()
DEFAULT_HEALTH_INTERVAL = 60


class CopyTradeEngine:
    """Owns the shared ledger, the update bus and one worker task per session.

    Each session's events are processed strictly in order by its worker, so a
    session never has two mirror decisions in flight. Sessions run
    concurrently with each other. Price marks and resolutions are applied to
    the ledger directly by the caller, then exit checks are queued.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        engine_config: EngineConfig | None = None,
        *,
        execution: ExecutionClient | None = None,
        resolver: TraderResolver | None = None,
        store: CopyTradeStore | None = None,
        has_credentialed_wallet: bool = False,
    ) -> None:
        self.engine_config = engine_config or EngineConfig()
        self.execution = execution
        self.resolver = resolver
        self.store = store
        self.has_credentialed_wallet = has_credentialed_wallet
        self.ledger = PositionLedger()
        self.bus = UpdateBus(self.engine_config.update_buffer_size)
        self.rate_limiter = OrderRateLimiter(self.engine_config.max_orders_per_minute)
        self._controllers: dict[str, SessionController] = {}
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._order_sessions: dict[str, str] = {}
        self._unsaved_orders: dict[str, CopyTradeOrder] = {}

    # ── Registry ──────────────────────────────────────────────

    @property
    def controllers(self) -> list[SessionController]:
        return list(self._controllers.values())

    def get_controller(self, session_id: str) -> SessionController:
        ctrl = self._controllers.get(session_id)
        if ctrl is None:
            raise SessionNotFound(session_id)
        return ctrl

    def create_session(self, config: SessionConfig | dict[str, Any]) -> CopyTradeSession:
        """Validate, resolve source traders and start the session's worker."""
        session = create_session(config, has_credentialed_wallet=self.has_credentialed_wallet)
        if self.resolver is None:
            raise SessionValidationError("No trader resolver configured")
        session.traders = self.resolver.resolve(session.config)
        ctrl = self._register(session)
        self._persist(ctrl)
        log.info(
            "session_created",
            session_id=session.id,
            owner=session.owner,
            traders=len(session.traders),
            initial_capital=float(session.config.initial_capital),
            simulate=session.simulate,
            order_type=session.config.order_type,
        )
        return session

    def restore(self) -> int:
        """Reload running/paused sessions from the store. Returns sessions restored."""
        if self.store is None:
            return 0
        restored = self.store.load_active()
        for item in restored:
            for pos in item.positions:
                self.ledger.restore(pos)
            # Reservations are rebuilt from open orders below
            item.session.reserved_usdc = Decimal("0")
            ctrl = self._register(item.session)
            for order in item.orders:
                ctrl.orders.restore(order)
                self._order_sessions[order.id] = order.session_id
            ctrl.mark_seen(item.seen_tx_hashes)
            ctrl.refresh_marks()
        log.info("sessions_restored", count=len(restored))
        return len(restored)

    def _register(self, session: CopyTradeSession) -> SessionController:
        ctrl = SessionController(
            session,
            self.ledger,
            self.bus,
            self.engine_config,
            execution=self.execution,
            rate_limiter=self.rate_limiter,
            on_order_change=self._on_order_change,
        )
        queue: asyncio.Queue = asyncio.Queue()
        self._controllers[session.id] = ctrl
        self._queues[session.id] = queue
        self._workers[session.id] = asyncio.create_task(
            self._worker(ctrl, queue), name=f"copytrade-session-{session.id}",
        )
        return ctrl

    # ── Inbound events ────────────────────────────────────────

    def on_source_trade(self, trade: SourceTrade) -> int:
        """Fan a source trade out to running sessions that follow its trader."""
        queued = 0
        for ctrl in self._controllers.values():
            if ctrl.status != "running" or trade.trader not in ctrl.session.traders:
                continue
            self._enqueue(ctrl, lambda c=ctrl: c.on_source_trade(trade))
            queued += 1
        log.debug("source_trade_dispatched", tx_hash=trade.tx_hash, sessions=queued)
        return queued

    def on_price(self, tick: PriceTick) -> int:
        """Apply a mark to the ledger, then queue exit checks for holders."""
        self.ledger.mark_price(tick.asset_id, tick.price, tick.timestamp)
        queued = 0
        for sid in self.ledger.sessions_holding(tick.asset_id):
            ctrl = self._controllers.get(sid)
            if ctrl is None:
                continue
            ctrl.refresh_marks()
            if ctrl.status == "stopped":
                continue
            self._enqueue(ctrl, lambda c=ctrl: c.on_exit_check(tick.asset_id, tick.price))
            queued += 1
        return queued

    def on_resolution(self, resolution: Resolution) -> int:
        touched = self.ledger.mark_resolved(resolution.asset_id, resolution.payout_per_share)
        for pos in touched:
            ctrl = self._controllers.get(pos.session_id)
            if ctrl is not None:
                ctrl.refresh_marks()
        log.info(
            "market_resolved",
            asset_id=resolution.asset_id,
            payout_per_share=float(resolution.payout_per_share),
            sessions=len(touched),
        )
        return len(touched)

    def on_fill(self, order_id: str, fill_price: Decimal, filled_shares: Decimal) -> None:
        """Route a venue fill for a resting order to its session's worker."""
        ctrl = self._order_owner(order_id)
        self._enqueue(ctrl, lambda: ctrl.orders.on_fill(order_id, fill_price, filled_shares))

    def on_reject(self, order_id: str, reason: str) -> None:
        ctrl = self._order_owner(order_id)
        self._enqueue(ctrl, lambda: ctrl.orders.on_reject(order_id, reason))

    # ── Commands ──────────────────────────────────────────────

    def pause(self, session_id: str, reason: str | None = None) -> None:
        ctrl = self.get_controller(session_id)
        ctrl.pause(reason)
        self._persist(ctrl)

    def resume(self, session_id: str) -> None:
        """Resume a paused session with a freshly resolved trader set."""
        ctrl = self.get_controller(session_id)
        traders = self.resolver.resolve(ctrl.session.config) if self.resolver else None
        ctrl.resume(traders)
        self._persist(ctrl)

    async def stop(self, session_id: str, reason: str = "user") -> None:
        """Stop immediately, then cancel resting GTC orders at the venue.

        An order whose submission is already awaiting the venue still settles.
        """
        ctrl = self.get_controller(session_id)
        ctrl.stop(reason)
        await ctrl.orders.cancel_resting("session_stopped")
        self._persist(ctrl)

    async def close_position(self, session_id: str, asset_id: str) -> CopyTradeOrder:
        ctrl = self.get_controller(session_id)
        return await self._call(ctrl, lambda: ctrl.close_position(asset_id))

    async def redeem(self, session_id: str, asset_id: str) -> Decimal:
        ctrl = self.get_controller(session_id)
        return await self._call(ctrl, lambda: ctrl.redeem(asset_id))

    async def health_check(self, now: datetime | None = None) -> list[HealthReport]:
        """Run health checks through each live session's worker."""
        now = now or datetime.now(timezone.utc)
        reports = []
        for ctrl in list(self._controllers.values()):
            if ctrl.status == "stopped":
                continue
            reports.append(await self._call(ctrl, lambda c=ctrl: check_session_health(c, now)))
        return reports

    async def run_health_loop(self, interval_secs: float | None = None) -> None:
        """Run health checks forever (cancel the task to stop)."""
        while True:
            interval = interval_secs or min(
                (c.session.config.health_interval_secs for c in self._controllers.values()),
                default=DEFAULT_HEALTH_INTERVAL,
            )
            await asyncio.sleep(interval)
            try:
                await self.health_check()
            except Exception:
                log.exception("health_check_error")

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        await asyncio.gather(*(q.join() for q in self._queues.values()))

    async def shutdown(self) -> None:
        """Finish queued work, stop the workers and flush state to the store."""
        for queue in self._queues.values():
            queue.put_nowait(_SHUTDOWN)
        await asyncio.gather(*self._workers.values())
        self._workers.clear()
        for ctrl in self._controllers.values():
            self._persist(ctrl)
        log.info("engine_shutdown", sessions=len(self._controllers))

    # ── Internals ─────────────────────────────────────────────

    def _order_owner(self, order_id: str) -> SessionController:
        sid = self._order_sessions.get(order_id)
        if sid is None:
            raise OrderIntegrityError(f"unknown order {order_id}")
        return self.get_controller(sid)

    def _enqueue(self, ctrl: SessionController, fn: Callable[[], Any]) -> None:
        self._queues[ctrl.id].put_nowait((fn, None))

    async def _call(self, ctrl: SessionController, fn: Callable[[], Any]) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._queues[ctrl.id].put_nowait((fn, future))
        return await future

    async def _worker(self, ctrl: SessionController, queue: asyncio.Queue) -> None:
        bind_session_context(ctrl.id, ctrl.session.owner)
        while True:
            item = await queue.get()
            try:
                if item is _SHUTDOWN:
                    return
                fn, future = item
                try:
                    result = fn()
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as exc:
                    log.exception("session_event_failed", session_id=ctrl.id)
                    if future is not None and not future.done():
                        future.set_exception(exc)
                else:
                    if future is not None and not future.done():
                        future.set_result(result)
                self._persist(ctrl)
            finally:
                queue.task_done()

    def _on_order_change(self, order: CopyTradeOrder) -> None:
        self._order_sessions[order.id] = order.session_id
        if self.store is None:
            return
        # Called mid-settlement: failures are retried by _persist, never raised
        try:
            self.store.save_order(order)
        except Exception:
            self._unsaved_orders[order.id] = order
            log.exception(
                "persist_failed", session_id=order.session_id, order_id=order.id, status=order.status,
            )
        else:
            self._unsaved_orders.pop(order.id, None)

    def _persist(self, ctrl: SessionController) -> None:
        if self.store is None:
            return
        try:
            for order in [o for o in self._unsaved_orders.values() if o.session_id == ctrl.id]:
                self.store.save_order(order)
                del self._unsaved_orders[order.id]
            self.store.save_session(ctrl.session)
            new = ctrl.unsaved_tx_hashes
            self.store.save_seen(ctrl.id, new)
            ctrl.mark_saved(new)
            self.store.save_positions(self.ledger.positions(ctrl.id))
        except Exception:
            log.exception("persist_failed", session_id=ctrl.id)
