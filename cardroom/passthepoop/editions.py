from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Type

from ..deck import ACE, Card
from ..errors import ConfigError, MutualDestruction

LOGGER = logging.getLogger(__name__)

# one pass per card in the deck bounds the Diarrhea elimination loop
MAX_ELIMINATION_PASSES = 52


@dataclass
class Participant:
    player_id: int
    lives: int = 0
    balance: int = 0
    card: Optional[Card] = None
    # a dead card takes no part in the end of round comparison
    dead_card: bool = False
    is_flipped: bool = False

    def new_round(self) -> None:
        self.card = None
        self.dead_card = False
        self.is_flipped = False

    def subtract_life(self, count: int) -> int:
        """Take ``count`` lives (0 takes them all); returns the lives actually lost."""
        if count < 0:
            raise ValueError("count cannot be less than 0")
        before = self.lives
        if count == 0:
            self.lives = 0
        else:
            self.lives = max(0, self.lives - count)
        return before - self.lives

    def rank(self) -> int:
        if self.card is None:
            raise RuntimeError(f"player {self.player_id} has no card")
        # aces are the lowest card
        return self.card.ace_low_rank

    def to_dict(self, show_card: bool = False) -> dict:
        visible = self.card is not None and (show_card or self.is_flipped)
        return {
            "playerId": self.player_id,
            "lives": self.lives,
            "balance": self.balance,
            "card": self.card.to_dict() if visible else None,
            "isFlipped": self.is_flipped,
            "isCardDead": self.dead_card,
        }


@dataclass
class RoundLoser:
    player_id: int
    card: Optional[Card]
    lives_lost: int

    def to_dict(self) -> dict:
        return {
            "playerId": self.player_id,
            "card": self.card.to_dict() if self.card else None,
            "livesLost": self.lives_lost,
        }


@dataclass
class LoserGroup:
    """Participants who lost lives together, revealed in ``order``."""

    order: int
    round_losers: List[RoundLoser] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"order": self.order, "roundLosers": [loser.to_dict() for loser in self.round_losers]}


def _losers(participants: Sequence[Participant], lose_all: bool = False) -> List[RoundLoser]:
    return [RoundLoser(p.player_id, p.card, p.lives if lose_all else min(1, p.lives)) for p in participants]


def lowest(participants: Sequence[Participant]) -> List[Participant]:
    low = min(p.rank() for p in participants)
    return [p for p in participants if p.rank() == low]


class Edition:
    """Rules that decide who loses lives at the end of a round."""

    key = ""

    def name(self) -> str:
        raise NotImplementedError

    def participant_was_passed(self, participant: Participant, card: Card) -> None:
        """Called when ``card`` is passed back to ``participant`` or drawn from the deck."""

    def loser_groups(self, participants: Sequence[Participant]) -> List[List[RoundLoser]]:
        raise NotImplementedError

    def end_round(self, participants: Sequence[Participant]) -> List[LoserGroup]:
        """Work out the losers and take their lives.

        Raises ``MutualDestruction`` and leaves every life alone when nobody
        loses or nobody would be left standing.
        """
        groups = [
            LoserGroup(order=idx, round_losers=losers)
            for idx, losers in enumerate(g for g in self.loser_groups(participants) if g)
        ]
        if not groups:
            raise MutualDestruction()

        remaining = {p.player_id: p.lives for p in participants}
        for group in groups:
            for loser in group.round_losers:
                remaining[loser.player_id] -= loser.lives_lost
        if all(lives <= 0 for lives in remaining.values()):
            raise MutualDestruction()

        by_id = {p.player_id: p for p in participants}
        for group in groups:
            for loser in group.round_losers:
                by_id[loser.player_id].subtract_life(loser.lives_lost)
        return groups


class StandardEdition(Edition):
    """The lowest card loses a life."""

    key = "standard"

    def name(self) -> str:
        return "Standard"

    def loser_groups(self, participants: Sequence[Participant]) -> List[List[RoundLoser]]:
        low = lowest(participants)
        if len(low) == len(participants):
            # everyone tied for the lowest card
            return []
        return [_losers(low)]


class DiarrheaEdition(Edition):
    """A faster edition.

    An ace passed back kills the card and costs a life. Players tied for the
    lowest card lose all their lives and the rest play on for the next low
    card.
    """

    key = "diarrhea"

    def name(self) -> str:
        return "Diarrhea"

    def participant_was_passed(self, participant: Participant, card: Card) -> None:
        if card.rank == ACE:
            participant.dead_card = True

    def loser_groups(self, participants: Sequence[Participant]) -> List[List[RoundLoser]]:
        groups = [_losers([p for p in participants if p.dead_card])]
        survivors = [p for p in participants if not p.dead_card]

        for _ in range(MAX_ELIMINATION_PASSES):
            if len(survivors) < 2:
                break
            low = lowest(survivors)
            if len(low) == 1:
                groups.append(_losers(low))
                break
            if len(low) == len(survivors):
                # nobody would be left to play for the next low card
                break
            groups.append(_losers(low, lose_all=True))
            survivors = [p for p in survivors if p not in low]
        return groups


class PairsEdition(Edition):
    """Any pair on the board beats any single card.

    Trips or better on the board and the rest of the board loses all their
    lives.
    """

    key = "pairs"

    def name(self) -> str:
        return "Pairs"

    def loser_groups(self, participants: Sequence[Participant]) -> List[List[RoundLoser]]:
        by_rank: Dict[int, List[Participant]] = defaultdict(list)
        for participant in participants:
            by_rank[participant.rank()].append(participant)

        largest = max(len(group) for group in by_rank.values())
        if largest >= 3:
            best_rank = max(rank for rank, group in by_rank.items() if len(group) == largest)
            return [_losers([p for p in participants if p.rank() != best_rank], lose_all=True)]

        smallest = min(len(group) for group in by_rank.values())
        low_rank = min(rank for rank, group in by_rank.items() if len(group) == smallest)
        return [_losers(by_rank[low_rank])]


EDITIONS: Dict[str, Type[Edition]] = {
    edition.key: edition for edition in (StandardEdition, DiarrheaEdition, PairsEdition)
}


def new_edition(key: str) -> Edition:
    try:
        return EDITIONS[key.strip().lower()]()
    except KeyError:
        raise ConfigError(f"unknown edition: {key}") from None
