"""Tests for the JSON-lines replay runner."""

from __future__ import annotations

import asyncio
import json

import pytest

from copytrade_core.config.schema import AppConfig
from copytrade_core.engine.runner import read_events, replay
from copytrade_core.engine.store import CopyTradeStore
from copytrade_core.models import PriceTick, Resolution, SourceTrade

WHALE = "0xwhale"


def _write_events(path, events):
    path.write_text("\n".join(json.dumps(e) for e in events) + "\n")
    return path


def _trade(tx, side="buy", usdc="20", price="0.5", asset="tok"):
    return {
        "kind": "trade", "tx_hash": tx, "trader": WHALE, "asset_id": asset, "side": side,
        "usdc_amount": usdc, "price": price, "timestamp": "2026-03-01T12:00:00Z",
    }


def _config(**session):
    base = {
        "owner": "alice", "list_id": "whales", "copy_pct": "0.5",
        "max_position_usdc": "100", "initial_capital": "1000",
    }
    base.update(session)
    return AppConfig.model_validate({
        "logging": {"level": "WARNING"},
        "watchlists": {"whales": [WHALE]},
        "sessions": [base],
    })


class TestReadEvents:
    def test_parses_each_kind(self, tmp_path):
        path = _write_events(tmp_path / "events.jsonl", [
            _trade("0x1"),
            {"kind": "price", "asset_id": "tok", "price": "0.6"},
            {"kind": "resolution", "asset_id": "tok", "payout_per_share": "1"},
        ])
        events = list(read_events(path))
        assert [type(e) for e in events] == [SourceTrade, PriceTick, Resolution]

    def test_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text("\n" + json.dumps(_trade("0x1")) + "\n\n")
        assert len(list(read_events(path))) == 1

    def test_unknown_kind_reports_line(self, tmp_path):
        path = _write_events(tmp_path / "events.jsonl", [_trade("0x1"), {"kind": "bogus"}])
        with pytest.raises(ValueError, match=":2: unknown event kind"):
            list(read_events(path))


class TestReplay:
    def test_replay_take_profit(self, tmp_path):
        path = _write_events(tmp_path / "events.jsonl", [
            _trade("0x1"),
            _trade("0x1"),
            {"kind": "price", "asset_id": "tok", "price": "0.7"},
        ])
        results = asyncio.run(replay(_config(take_profit_pct="30"), path))
        (stats,) = results.values()
        assert stats.total_orders == 2
        assert stats.filled_orders == 2
        assert stats.open_positions == 0
        assert stats.realized_pnl == 4
        assert stats.win_count == 1

    def test_replay_resolution(self, tmp_path):
        path = _write_events(tmp_path / "events.jsonl", [
            _trade("0x1"),
            {"kind": "resolution", "asset_id": "tok", "payout_per_share": "0"},
        ])
        (stats,) = asyncio.run(replay(_config(), path)).values()
        assert stats.realized_pnl == -10
        assert stats.unrealized_pnl == 0
        assert stats.loss_count == 1

    def test_invalid_session_is_skipped(self, tmp_path):
        path = _write_events(tmp_path / "events.jsonl", [_trade("0x1")])
        results = asyncio.run(replay(_config(list_id="missing"), path))
        assert results == {}

    def test_restored_sessions_are_not_recreated(self, tmp_path, db_session):
        store = CopyTradeStore(db_session)
        path = _write_events(tmp_path / "events.jsonl", [_trade("0x1")])
        first = asyncio.run(replay(_config(), path, store=store))
        second = asyncio.run(replay(_config(), path, store=store))
        assert list(first) == list(second)
        (stats,) = second.values()
        assert stats.total_orders == 1
