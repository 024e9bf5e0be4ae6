"""Exception hierarchy for the copy-trade engine.

Risk rejections are not exceptions: they come back from the risk gate as
``Reject`` values. Everything here is either a caller error (validation,
illegal transition) or a fault the engine refuses to paper over.
"""

from __future__ import annotations


class CopyTradeError(Exception):
    """Base class for all engine errors."""


class SessionValidationError(CopyTradeError):
    """Invalid session configuration — the session never starts."""


class SessionNotFound(CopyTradeError):
    """No session with the given id is registered with the engine."""


class InvalidTransition(CopyTradeError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, session_id: str, current: str, action: str) -> None:
        super().__init__(f"cannot {action} session {session_id} while {current}")
        self.session_id = session_id
        self.current = current
        self.action = action


class IntegrityError(CopyTradeError):
    """Internal inconsistency — the mutation was refused."""


class LedgerIntegrityError(IntegrityError):
    """A ledger mutation would break position invariants."""


class InsufficientShares(LedgerIntegrityError):
    def __init__(self, session_id: str, asset_id: str, held, requested) -> None:
        super().__init__(
            f"session {session_id} holds {held} shares of {asset_id}, cannot sell {requested}"
        )
        self.session_id = session_id
        self.asset_id = asset_id
        self.held = held
        self.requested = requested


class PositionResolved(LedgerIntegrityError):
    """The market has resolved; the position can only be redeemed."""


class OrderIntegrityError(IntegrityError):
    """An order callback does not match the order's current state."""


class ExecutionError(CopyTradeError):
    """Raised by execution clients for venue or network failures."""
