from __future__ import annotations

from .deck import EndOfDeck


class ConfigError(ValueError):
    """Invalid construction arguments for an engine."""


class TurnError(ValueError):
    """Action attempted out of turn or in the wrong phase."""


class IllegalActionError(ValueError):
    """Action attempted in turn but not allowed."""


class ResourceError(RuntimeError):
    """Engine ran out of a resource it cannot replenish."""


class MutualDestruction(Exception):
    """Every remaining participant would be eliminated; the round must be replayed."""

    def __init__(self) -> None:
        super().__init__("mutual destruction")


__all__ = [
    "ConfigError",
    "EndOfDeck",
    "IllegalActionError",
    "MutualDestruction",
    "ResourceError",
    "TurnError",
]
