"""Rules engines for a home-game card room."""

from .aceydeucey import AceyDeuceyOptions
from .aceydeucey import Game as AceyDeuceyGame
from .deck import Card, Deck, EndOfDeck, Hand, Suit, card_from_string, cards_from_string, cards_to_string
from .errors import ConfigError, IllegalActionError, MutualDestruction, ResourceError, TurnError
from .guts import Game as GutsGame
from .guts import GutsOptions
from .handanalyzer import HandAnalyzer, HandCategory
from .littlel import Game as LittleLGame
from .littlel import LittleLOptions
from .passthepoop import Game as PassThePoopGame
from .passthepoop import PassThePoopOptions
from .playable import (
    GameOverDetails,
    LogBus,
    LogMessage,
    PayloadIn,
    Playable,
    Response,
    Scheduler,
    Tickable,
    simple_log_message,
)
from .potmanager import PotManager, WinManager
from .sevencard import Game as SevenCardGame
from .sevencard import SevenCardOptions
from .texasholdem import Game as HoldemGame
from .texasholdem import HoldemOptions

__all__ = [
    "AceyDeuceyGame",
    "AceyDeuceyOptions",
    "Card",
    "ConfigError",
    "Deck",
    "EndOfDeck",
    "GameOverDetails",
    "GutsGame",
    "GutsOptions",
    "Hand",
    "HandAnalyzer",
    "HandCategory",
    "HoldemGame",
    "HoldemOptions",
    "IllegalActionError",
    "LittleLGame",
    "LittleLOptions",
    "LogBus",
    "LogMessage",
    "MutualDestruction",
    "PassThePoopGame",
    "PassThePoopOptions",
    "PayloadIn",
    "Playable",
    "PotManager",
    "ResourceError",
    "Response",
    "Scheduler",
    "SevenCardGame",
    "SevenCardOptions",
    "Suit",
    "Tickable",
    "TurnError",
    "WinManager",
    "card_from_string",
    "cards_from_string",
    "cards_to_string",
    "simple_log_message",
]
