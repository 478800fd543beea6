"""Seven-card poker and its variants."""

from typing import Dict, Type

from ..errors import ConfigError
from .chiggs import Chiggs
from .game import Action, Game, Participant, Round, SevenCardOptions
from .variants import Baseball, CouponsAndClippings, FollowTheQueen, HighChicago, LowCardWild, Stud, Variant

VARIANTS: Dict[str, Type[Variant]] = {
    variant.key: variant
    for variant in (Stud, Baseball, FollowTheQueen, HighChicago, LowCardWild, CouponsAndClippings, Chiggs)
}


def new_variant(key: str) -> Variant:
    try:
        return VARIANTS[key]()
    except KeyError:
        raise ConfigError(f"unknown seven-card variant: {key}") from None


__all__ = [
    "Action",
    "Baseball",
    "Chiggs",
    "CouponsAndClippings",
    "FollowTheQueen",
    "Game",
    "HighChicago",
    "LowCardWild",
    "Participant",
    "Round",
    "SevenCardOptions",
    "Stud",
    "VARIANTS",
    "Variant",
    "new_variant",
]
