"""Tests for the SQLAlchemy-backed store (SQLite in-memory)."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from copytrade_core.db.tables import OrderRow, PositionRow, SeenTradeRow, SessionRow
from copytrade_core.engine.store import CopyTradeStore
from copytrade_core.models import CopyTradeOrder, Position, create_session

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
D = Decimal


def _session(sid="s1", owner="alice"):
    session = create_session(
        {
            "owner": owner, "list_id": "whales", "copy_pct": "0.25",
            "max_position_usdc": "100", "initial_capital": "1000", "order_type": "GTC",
            "take_profit_pct": "30",
        },
        session_id=sid,
        now=NOW,
    )
    session.traders = {"0xa", "0xb"}
    return session


def _order(sid="s1", status="simulated", **kwargs):
    return CopyTradeOrder(
        session_id=sid, source_tx_hash="0xtx", source_trader="0xa", asset_id="tok",
        side="buy", price="0.5", source_price="0.5", size_usdc="10", status=status,
        created_at=NOW, updated_at=NOW, **kwargs,
    )


def _position(sid="s1", asset="tok", **kwargs):
    return Position(
        session_id=sid, asset_id=asset, buy_shares=D("20"), avg_entry_price=D("0.5"),
        current_price=D("0.6"), total_bought_usdc=D("10"), order_count=1,
        source_traders={"0xa"}, opened_at=NOW, price_updated_at=NOW, **kwargs,
    )


class TestWrites:
    def test_save_session_upserts(self, db_session):
        store = CopyTradeStore(db_session)
        session = _session()
        store.save_session(session)
        session.status = "paused"
        session.remaining_capital = D("990")
        store.save_session(session)

        rows = db_session.query(SessionRow).all()
        assert len(rows) == 1
        assert rows[0].status == "paused"
        assert rows[0].remaining_capital == D("990")
        assert rows[0].traders == ["0xa", "0xb"]
        assert rows[0].config["order_type"] == "GTC"

    def test_save_order_upserts(self, db_session):
        store = CopyTradeStore(db_session)
        store.save_session(_session())
        order = _order(status="submitted", venue_order_id="v1")
        store.save_order(order)
        order.status = "filled"
        order.filled_shares = D("20")
        store.save_order(order)

        row = db_session.get(OrderRow, order.id)
        assert row.status == "filled"
        assert row.filled_shares == D("20")
        assert row.venue_order_id == "v1"

    def test_save_positions_upserts_by_asset(self, db_session):
        store = CopyTradeStore(db_session)
        store.save_session(_session())
        assert store.save_positions([_position(), _position(asset="other")]) == 2
        store.save_positions([_position(sell_shares=D("5"))])

        rows = db_session.query(PositionRow).order_by(PositionRow.asset_id).all()
        assert [r.asset_id for r in rows] == ["other", "tok"]
        assert rows[1].sell_shares == D("5")

    def test_save_seen_appends_only_new_hashes(self, db_session):
        store = CopyTradeStore(db_session)
        store.save_session(_session())
        assert store.save_seen("s1", {"0xtx1", "0xtx2"}, seen_at=NOW) == 2
        assert store.save_seen("s1", {"0xtx2", "0xtx3"}) == 1
        assert store.save_seen("s1", set()) == 0

        rows = db_session.query(SeenTradeRow).order_by(SeenTradeRow.tx_hash).all()
        assert [r.tx_hash for r in rows] == ["0xtx1", "0xtx2", "0xtx3"]
        assert {r.session_id for r in rows} == {"s1"}

    def test_save_session_leaves_seen_hashes_alone(self, db_session):
        store = CopyTradeStore(db_session)
        session = _session()
        store.save_session(session)
        store.save_seen("s1", {"0xtx1"})
        store.save_session(session)
        assert db_session.query(SeenTradeRow).count() == 1

    def test_failed_commit_rolls_back(self, db_session):
        store = CopyTradeStore(db_session)
        # No parent session row: the foreign key fails on commit
        with pytest.raises(IntegrityError):
            store.save_order(_order(sid="missing"))
        store.save_session(_session())
        store.save_order(_order())
        assert db_session.query(OrderRow).count() == 1


class TestLoadActive:
    def test_restores_session_orders_positions(self, db_session):
        store = CopyTradeStore(db_session)
        session = _session()
        store.save_session(session)
        store.save_seen("s1", {"0xtx1"})
        order = _order(status="submitted", venue_order_id="v1")
        store.save_order(order)
        store.save_positions([_position()])

        restored = store.load_active()
        assert len(restored) == 1
        item = restored[0]
        assert item.session.id == "s1"
        assert item.session.owner == "alice"
        assert item.session.config.take_profit_pct == D("30")
        assert item.session.traders == {"0xa", "0xb"}
        assert item.session.created_at == NOW
        assert item.seen_tx_hashes == {"0xtx1"}
        assert [o.id for o in item.orders] == [order.id]
        assert item.orders[0].created_at.tzinfo is not None
        pos = item.positions[0]
        assert pos.net_shares == D("20")
        assert pos.source_traders == {"0xa"}
        assert pos.opened_at == NOW

    def test_skips_stopped_sessions(self, db_session):
        store = CopyTradeStore(db_session)
        running = _session("s1")
        paused = _session("s2", owner="bob")
        paused.status = "paused"
        stopped = _session("s3", owner="carol")
        stopped.status = "stopped"
        for s in (running, paused, stopped):
            store.save_session(s)

        ids = sorted(item.session.id for item in store.load_active())
        assert ids == ["s1", "s2"]

    def test_empty_store(self, db_session):
        assert CopyTradeStore(db_session).load_active() == []
