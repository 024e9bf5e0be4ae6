"""Execution client contract — the venue side of live order submission.

Implementations own signing, transport and their own retry policy. The engine
calls ``submit_order`` once per order and treats whatever comes back (or the
ExecutionError raised) as final.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from copytrade_core.models.events import ExecutionReport, Side


class ExecutionClient(ABC):
    """Submits and cancels orders on the exchange."""

    @abstractmethod
    async def submit_order(
        self,
        asset_id: str,
        side: Side,
        size_usdc: Decimal,
        max_slippage_bps: Decimal,
        order_type: str,
        *,
        limit_price: Decimal,
        size_shares: Decimal | None = None,
    ) -> ExecutionReport:
        """Place an order.

        FOK orders spend ``size_usdc`` (buys) or sell ``size_shares`` at market;
        GTC orders rest at ``limit_price``. Raises ExecutionError on
        venue/network failure.
        """
        ...

    @abstractmethod
    async def cancel_orders(self, venue_order_ids: list[str]) -> list[str]:
        """Cancel resting orders; returns the ids actually canceled."""
        ...
