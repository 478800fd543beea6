"""Pass the Poop and its editions."""

from .editions import (
    EDITIONS,
    DiarrheaEdition,
    Edition,
    LoserGroup,
    PairsEdition,
    Participant,
    RoundLoser,
    StandardEdition,
    new_edition,
)
from .game import Game, GameAction, PassThePoopOptions

__all__ = [
    "DiarrheaEdition",
    "EDITIONS",
    "Edition",
    "Game",
    "GameAction",
    "LoserGroup",
    "PairsEdition",
    "Participant",
    "PassThePoopOptions",
    "RoundLoser",
    "StandardEdition",
    "new_edition",
]
