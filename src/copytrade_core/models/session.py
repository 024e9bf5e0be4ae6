"""Copy-trade session model — configuration plus running state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from copytrade_core.config.schema import SessionConfig
from copytrade_core.errors import SessionValidationError

SessionStatus = Literal["running", "paused", "stopped"]


class CopyTradeSession(BaseModel):
    """A user's copy-trading session."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    config: SessionConfig
    status: SessionStatus = "running"
    remaining_capital: Decimal
    reserved_usdc: Decimal = Decimal("0")
    positions_value: Decimal = Decimal("0")
    traders: set[str] = Field(default_factory=set)
    consecutive_failures: int = 0
    cooldown_until: datetime | None = None
    stop_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def owner(self) -> str:
        return self.config.owner

    @property
    def simulate(self) -> bool:
        return self.config.simulate

    @property
    def available_capital(self) -> Decimal:
        """Cash not committed to fills or resting orders."""
        return self.remaining_capital - self.reserved_usdc

    @property
    def equity(self) -> Decimal:
        return self.remaining_capital + self.positions_value

    @property
    def return_ratio(self) -> Decimal:
        """(positions_value + remaining_capital - initial_capital) / initial_capital."""
        initial = self.config.initial_capital
        return (self.equity - initial) / initial

    def in_cooldown(self, now: datetime) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


def create_session(
    config: SessionConfig | dict[str, Any],
    *,
    has_credentialed_wallet: bool = False,
    session_id: str | None = None,
    now: datetime | None = None,
) -> CopyTradeSession:
    """Validate *config* and build a running session.

    Raises SessionValidationError for any invalid combination; such a session
    never enters ``running``.
    """
    if not isinstance(config, SessionConfig):
        try:
            config = SessionConfig.model_validate(config)
        except ValidationError as exc:
            raise SessionValidationError(str(exc)) from exc

    if not config.simulate and not has_credentialed_wallet:
        raise SessionValidationError(
            "No wallet with exchange credentials; live sessions require one"
        )

    now = now or datetime.now(timezone.utc)
    kwargs: dict[str, Any] = {}
    if session_id is not None:
        kwargs["id"] = session_id
    return CopyTradeSession(
        config=config,
        remaining_capital=config.initial_capital,
        created_at=now,
        updated_at=now,
        **kwargs,
    )
