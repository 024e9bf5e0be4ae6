"""Replay runner — feeds a JSON-lines event file through configured sessions."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Iterator
from dataclasses import asdict
from decimal import Decimal
from pathlib import Path

import structlog

from copytrade_core.config.loader import load_config
from copytrade_core.config.schema import AppConfig
from copytrade_core.db.engine import dispose_engine, get_session, init_engine
from copytrade_core.engine.dispatcher import CopyTradeEngine
from copytrade_core.engine.queries import session_stats, summary
from copytrade_core.engine.store import CopyTradeStore
from copytrade_core.engine.traders import StaticTraderDirectory
from copytrade_core.engine.updates import run_update_logger
from copytrade_core.errors import SessionValidationError
from copytrade_core.logging.setup import setup_logging
from copytrade_core.metrics.stats import SessionStats
from copytrade_core.models.events import PriceTick, Resolution, SourceTrade

log = structlog.get_logger("replay_runner")

_EVENT_MODELS = {
    "trade": SourceTrade,
    "price": PriceTick,
    "resolution": Resolution,
}

Event = SourceTrade | PriceTick | Resolution


def read_events(path: str | Path) -> Iterator[Event]:
    """Parse one event per non-blank line; ``kind`` selects the event type."""
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            data = json.loads(line)
            kind = data.pop("kind", None)
            model = _EVENT_MODELS.get(kind)
            if model is None:
                raise ValueError(f"{path}:{lineno}: unknown event kind {kind!r}")
            yield model.model_validate(data)


def dispatch(engine: CopyTradeEngine, event: Event) -> int:
    if isinstance(event, SourceTrade):
        return engine.on_source_trade(event)
    if isinstance(event, PriceTick):
        return engine.on_price(event)
    return engine.on_resolution(event)


def _loggable(stats: SessionStats) -> dict:
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in asdict(stats).items()}


async def replay(
    config: AppConfig,
    events_path: str | Path,
    store: CopyTradeStore | None = None,
) -> dict[str, SessionStats]:
    """Run every event through the engine in file order and return per-session stats."""
    directory = StaticTraderDirectory(config.watchlists, config.leaderboard)
    engine = CopyTradeEngine(config.engine, resolver=directory, store=store)
    logger_task = asyncio.create_task(run_update_logger(engine.bus.subscribe()))

    if engine.restore() == 0:
        for session_config in config.sessions:
            try:
                engine.create_session(session_config)
            except SessionValidationError as exc:
                log.error("session_invalid", owner=session_config.owner, error=str(exc))

    count = 0
    for event in read_events(events_path):
        dispatch(engine, event)
        # One event at a time keeps marks and fills in file order
        await engine.drain()
        count += 1

    await engine.health_check()
    results = {}
    for ctrl in engine.controllers:
        stats = session_stats(engine, ctrl.id)
        results[ctrl.id] = stats
        log.info("session_stats", **_loggable(stats))
    totals = summary(engine)
    log.info(
        "replay_complete",
        events=count,
        sessions=totals.total_sessions,
        total_pnl=float(totals.total_pnl),
        total_return_pct=totals.total_return_pct,
        total_orders=totals.total_orders,
    )

    await engine.shutdown()
    # Let the logger flush what the shutdown published
    await asyncio.sleep(0)
    logger_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await logger_task
    return results


async def run(config: AppConfig, events_path: str | Path) -> dict[str, SessionStats]:
    if not config.engine.persist:
        return await replay(config, events_path)

    init_engine(config.database.url)
    session_gen = get_session()
    db = next(session_gen)
    try:
        return await replay(config, events_path, store=CopyTradeStore(db))
    finally:
        try:
            next(session_gen)
        except StopIteration:
            pass
        dispose_engine()


def main(config_path: str | None = None, events_path: str | None = None) -> None:
    """Entry point — load config, set up logging, replay the events."""
    config = load_config(config_path)
    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        quiet_loggers=config.logging.quiet_loggers,
    )
    if events_path is None:
        log.error("no_events_file")
        return
    asyncio.run(run(config, events_path))
