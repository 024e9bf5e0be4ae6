"""Source trader resolution — which wallets a session mirrors."""

from __future__ import annotations

from abc import ABC, abstractmethod

from copytrade_core.config.schema import SessionConfig
from copytrade_core.errors import SessionValidationError

MAX_TOP_N = 50


class TraderResolver(ABC):
    """Maps a session's source selection to a set of lower-cased addresses."""

    @abstractmethod
    def resolve(self, config: SessionConfig) -> set[str]:
        ...


class StaticTraderDirectory(TraderResolver):
    """Resolver backed by in-memory watchlists and a PnL-ranked leaderboard.

    The leaderboard is expected best-first; ``top_n`` takes a prefix of it,
    clamped to 1..50.
    """

    def __init__(
        self,
        watchlists: dict[str, list[str]] | None = None,
        leaderboard: list[str] | None = None,
    ) -> None:
        self.watchlists = {k: list(v) for k, v in (watchlists or {}).items()}
        self.leaderboard = list(leaderboard or [])

    def update_leaderboard(self, ranked: list[str]) -> None:
        self.leaderboard = list(ranked)

    def resolve(self, config: SessionConfig) -> set[str]:
        if config.list_id is not None:
            members = self.watchlists.get(config.list_id)
            if members is None:
                raise SessionValidationError(f"List not found: {config.list_id}")
            return {a.lower() for a in members}
        if config.top_n is not None:
            n = max(1, min(config.top_n, MAX_TOP_N))
            return {a.lower() for a in self.leaderboard[:n]}
        raise SessionValidationError("Session has neither list_id nor top_n")
