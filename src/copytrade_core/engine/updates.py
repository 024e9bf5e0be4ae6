"""UpdateBus — fan-out of CopyTradeUpdate events to bounded subscriber queues."""

from __future__ import annotations

import asyncio

import structlog

from copytrade_core.models.updates import (
    BalanceUpdate,
    CopyTradeUpdate,
    OrderCanceled,
    OrderFailed,
    OrderFilled,
    OrderPlaced,
    SessionPaused,
    SessionResumed,
    SessionStopped,
)

log = structlog.get_logger("updates")


class UpdateBus:
    """Broadcasts updates in emission order without ever blocking the engine.

    Each subscriber gets its own queue. When a subscriber falls behind and its
    queue is full, further updates are dropped for that subscriber only.
    """

    def __init__(self, default_buffer: int = 1000) -> None:
        self._default_buffer = default_buffer
        self._subscribers: list[asyncio.Queue] = []
        self.dropped = 0

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self._default_buffer)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, update: CopyTradeUpdate) -> None:
        for queue in self._subscribers:
            try:
                queue.put_nowait(update)
            except asyncio.QueueFull:
                self.dropped += 1
                log.warning(
                    "update_dropped",
                    update_type=update.type,
                    session_id=update.session_id,
                    queue_size=queue.qsize(),
                )


def log_update(update: CopyTradeUpdate) -> None:
    """Write one update to the structured log, one branch per variant."""
    ulog = log.bind(session_id=update.session_id, owner=update.owner)
    if isinstance(update, OrderPlaced):
        ulog.info(
            "order_placed",
            order_id=update.order.id,
            asset_id=update.order.asset_id,
            side=update.order.side,
            size_usdc=float(update.order.size_usdc),
            price=float(update.order.price),
            simulate=update.order.simulate,
        )
    elif isinstance(update, OrderFilled):
        ulog.info(
            "order_filled",
            order_id=update.order_id,
            fill_price=float(update.fill_price),
            filled_shares=float(update.filled_shares),
            slippage_bps=float(update.slippage_bps),
            partial=update.partial,
        )
    elif isinstance(update, OrderFailed):
        ulog.warning("order_failed", order_id=update.order_id, error=update.error)
    elif isinstance(update, OrderCanceled):
        ulog.info("order_canceled", order_id=update.order_id, reason=update.reason)
    elif isinstance(update, SessionPaused):
        ulog.info("session_paused", reason=update.reason)
    elif isinstance(update, SessionResumed):
        ulog.info("session_resumed")
    elif isinstance(update, SessionStopped):
        if update.auto:
            ulog.error("session_auto_stopped", reason=update.reason)
        else:
            ulog.info("session_stopped", reason=update.reason)
    elif isinstance(update, BalanceUpdate):
        ulog.debug(
            "balance_update",
            remaining_capital=float(update.remaining_capital),
            positions_value=float(update.positions_value),
            reserved_usdc=float(update.reserved_usdc),
        )
    else:
        raise TypeError(f"unhandled update type: {type(update).__name__}")


async def run_update_logger(queue: asyncio.Queue) -> None:
    """Drain a subscriber queue into the log until cancelled."""
    while True:
        update = await queue.get()
        log_update(update)
