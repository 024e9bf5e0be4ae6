"""Periodic per-session health checks: stale marks, stuck GTC orders, loss breaker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from copytrade_core.engine.controller import SessionController

log = structlog.get_logger("health")


@dataclass
class HealthReport:
    session_id: str
    status: str
    stale_assets: list[str] = field(default_factory=list)
    canceled_orders: list[str] = field(default_factory=list)
    circuit_breaker_tripped: bool = False

    @property
    def healthy(self) -> bool:
        return not (self.stale_assets or self.canceled_orders or self.circuit_breaker_tripped)


def find_stale_assets(
    controller: SessionController,
    now: datetime,
    max_age: timedelta,
) -> list[str]:
    """Open, unresolved positions whose mark is older than *max_age*."""
    stale = []
    for pos in controller.ledger.positions(controller.id):
        if not pos.is_open or pos.resolved:
            continue
        if pos.price_updated_at is None or now - pos.price_updated_at > max_age:
            stale.append(pos.asset_id)
    return sorted(stale)


async def check_session_health(
    controller: SessionController,
    now: datetime | None = None,
) -> HealthReport:
    """Run every check for one session.

    GTC orders resting longer than ``gtc_timeout_secs`` are canceled, and the
    max-loss circuit breaker is re-evaluated against current marks.
    """
    now = now or datetime.now(timezone.utc)
    cfg = controller.engine_config
    report = HealthReport(session_id=controller.id, status=controller.status)
    if controller.status == "stopped":
        return report

    report.stale_assets = find_stale_assets(
        controller, now, timedelta(seconds=cfg.stale_price_secs),
    )
    if report.stale_assets:
        log.warning("stale_prices", session_id=controller.id, assets=report.stale_assets)

    if controller.session.config.order_type == "GTC":
        canceled = await controller.orders.cancel_resting(
            "gtc_timeout",
            older_than=timedelta(seconds=cfg.gtc_timeout_secs),
            now=now,
        )
        report.canceled_orders = [o.id for o in canceled]

    report.circuit_breaker_tripped = controller.check_circuit_breaker()
    report.status = controller.status

    log.debug(
        "health_checked",
        session_id=controller.id,
        status=report.status,
        stale=len(report.stale_assets),
        canceled=len(report.canceled_orders),
        tripped=report.circuit_breaker_tripped,
    )
    return report
