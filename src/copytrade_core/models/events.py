"""Boundary events — source trades, price ticks, resolutions, execution reports."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Side = Literal["buy", "sell"]


class SourceTrade(BaseModel):
    """A trade observed on a source trader's wallet."""

    tx_hash: str
    trader: str
    asset_id: str
    side: Side
    usdc_amount: Decimal = Field(gt=0)
    price: Decimal = Field(gt=0)
    timestamp: datetime

    @field_validator("trader")
    @classmethod
    def _lower_trader(cls, v: str) -> str:
        return v.lower()

    @field_validator("side", mode="before")
    @classmethod
    def _lower_side(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def shares(self) -> Decimal:
        """Share amount implied by the notional and price."""
        return self.usdc_amount / self.price


class PriceTick(BaseModel):
    """Latest market mark for one asset. Last value wins."""

    asset_id: str
    price: Decimal = Field(ge=0)
    timestamp: datetime | None = None


class Resolution(BaseModel):
    """One-shot market resolution for an asset."""

    asset_id: str
    payout_per_share: Decimal = Field(ge=0, le=1)


class ExecutionReport(BaseModel):
    """Result of submitting an order to the execution venue.

    ``matched`` — filled now (``fill_price``/``filled_shares`` set).
    ``live`` — GTC order resting on the book; fills arrive later.
    ``unmatched`` — nothing filled (FOK kill, GTC rejected by the book).
    """

    status: Literal["matched", "live", "unmatched"]
    fill_price: Decimal | None = None
    filled_shares: Decimal = Decimal("0")
    venue_order_id: str | None = None
    error: str | None = None
