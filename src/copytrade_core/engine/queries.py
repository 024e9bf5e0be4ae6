"""Read-only query surface over a running engine."""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from copytrade_core.engine.dispatcher import CopyTradeEngine
from copytrade_core.metrics.stats import (
    SessionStats,
    SessionsSummary,
    compute_session_stats,
    summarize_sessions,
)
from copytrade_core.models.order import CopyTradeOrder
from copytrade_core.models.position import Position
from copytrade_core.models.session import CopyTradeSession


def get_session(engine: CopyTradeEngine, session_id: str) -> CopyTradeSession:
    """Copy of one session; raises SessionNotFound."""
    ctrl = engine.get_controller(session_id)
    ctrl.refresh_marks()
    return ctrl.session.model_copy(deep=True)


def list_sessions(
    engine: CopyTradeEngine,
    owner: str | None = None,
    status: str | None = None,
) -> list[CopyTradeSession]:
    """Sessions, oldest first, optionally filtered by owner and status."""
    out = []
    for ctrl in engine.controllers:
        if owner is not None and ctrl.session.owner != owner:
            continue
        if status is not None and ctrl.status != status:
            continue
        ctrl.refresh_marks()
        out.append(ctrl.session.model_copy(deep=True))
    return sorted(out, key=lambda s: s.created_at)


def session_positions(
    engine: CopyTradeEngine,
    session_id: str,
    open_only: bool = False,
) -> list[Position]:
    engine.get_controller(session_id)
    snapshot = engine.ledger.snapshot(session_id)
    positions = sorted(snapshot.positions.values(), key=lambda p: p.asset_id)
    if open_only:
        positions = [p for p in positions if p.is_open]
    return positions


def session_orders(
    engine: CopyTradeEngine,
    session_id: str,
    limit: int = 50,
    offset: int = 0,
) -> list[CopyTradeOrder]:
    """Order history, newest first. ``limit`` is capped at 200."""
    ctrl = engine.get_controller(session_id)
    return [o.model_copy() for o in ctrl.orders.history(limit=limit, offset=offset)]


def session_stats(
    engine: CopyTradeEngine,
    session_id: str,
    now: datetime | None = None,
) -> SessionStats:
    ctrl = engine.get_controller(session_id)
    ctrl.refresh_marks()
    return compute_session_stats(
        ctrl.session,
        engine.ledger.snapshot(session_id),
        ctrl.orders.all_orders(),
        now=now,
    )


def summary(engine: CopyTradeEngine, owner: str | None = None) -> SessionsSummary:
    sessions = list_sessions(engine, owner=owner)
    stats = [session_stats(engine, s.id) for s in sessions]
    return summarize_sessions(sessions, stats)


def active_traders(engine: CopyTradeEngine) -> dict[str, int]:
    """Source trader -> number of running sessions following them."""
    counts: Counter[str] = Counter()
    for ctrl in engine.controllers:
        if ctrl.status == "running":
            counts.update(ctrl.session.traders)
    return dict(counts.most_common())
