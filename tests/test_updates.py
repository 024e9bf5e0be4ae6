"""Tests for the update bus and update logging."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from copytrade_core.engine.updates import UpdateBus, log_update, run_update_logger
from copytrade_core.logging import setup_logging
from copytrade_core.models import (
    BalanceUpdate,
    OrderCanceled,
    OrderFailed,
    SessionPaused,
    SessionStopped,
)


def _paused(n=0):
    return SessionPaused(session_id=f"s{n}", owner="alice", reason="user")


class TestUpdateBus:
    def test_fan_out_preserves_order(self):
        bus = UpdateBus()
        first, second = bus.subscribe(), bus.subscribe()
        for n in range(3):
            bus.publish(_paused(n))
        for queue in (first, second):
            assert [queue.get_nowait().session_id for _ in range(3)] == ["s0", "s1", "s2"]

    def test_full_queue_drops_for_that_subscriber_only(self):
        bus = UpdateBus()
        slow = bus.subscribe(maxsize=1)
        fast = bus.subscribe()
        bus.publish(_paused(0))
        bus.publish(_paused(1))
        assert slow.qsize() == 1
        assert fast.qsize() == 2
        assert bus.dropped == 1

    def test_unsubscribe(self):
        bus = UpdateBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)
        bus.publish(_paused())
        assert queue.empty()
        assert bus.subscriber_count == 0

    def test_no_subscribers_is_fine(self):
        UpdateBus().publish(_paused())


class TestLogUpdate:
    def test_auto_stop_logged_as_error(self, capsys):
        setup_logging(level="INFO", log_format="json")
        log_update(SessionStopped(session_id="s1", owner="alice", reason="max_loss_breached", auto=True))
        line = json.loads(capsys.readouterr().err.strip())
        assert line["event"] == "session_auto_stopped"
        assert line["level"] == "error"
        assert line["session_id"] == "s1"
        assert line["reason"] == "max_loss_breached"

    def test_failed_order_logged_as_warning(self, capsys):
        setup_logging(level="INFO", log_format="json")
        log_update(OrderFailed(session_id="s1", owner="alice", order_id="o1", error="fok_not_filled"))
        line = json.loads(capsys.readouterr().err.strip())
        assert line["event"] == "order_failed"
        assert line["level"] == "warning"
        assert line["error"] == "fok_not_filled"

    def test_balance_update_is_debug(self, capsys):
        setup_logging(level="INFO", log_format="json")
        log_update(BalanceUpdate(
            session_id="s1", owner="alice", remaining_capital=Decimal("990"),
            positions_value=Decimal("10"), reserved_usdc=Decimal("0"),
        ))
        assert capsys.readouterr().err == ""

    def test_unknown_update_raises(self):
        with pytest.raises(TypeError):
            log_update(SimpleNamespace(session_id="s1", owner="alice"))

    def test_logger_task_drains_queue(self, capsys):
        setup_logging(level="INFO", log_format="json")

        async def scenario():
            bus = UpdateBus()
            task = asyncio.create_task(run_update_logger(bus.subscribe()))
            bus.publish(OrderCanceled(session_id="s1", owner="alice", order_id="o1", reason="gtc_timeout"))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        line = json.loads(capsys.readouterr().err.strip())
        assert line["event"] == "order_canceled"
        assert line["reason"] == "gtc_timeout"
