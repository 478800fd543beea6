from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..deck import QUEEN, Card, Suit
from ..playable import simple_log_message
from .game import FACE_UP, PRIVATE_WILD, Action, Participant

if TYPE_CHECKING:
    from .game import Game

LOGGER = logging.getLogger(__name__)

SplitPotWinners = Tuple[List[Participant], Card, str]


class Variant:
    """Rules that set a seven-card game apart from plain stud.

    Every hook defaults to doing nothing, so a variant only overrides what it
    changes.
    """

    key = ""

    def name(self) -> str:
        raise NotImplementedError

    def start(self) -> None:
        """Reset per-game state before the first deal."""

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        """Called after ``card`` was added to ``participant``'s hand."""

    def split_pot_winners(self, game: "Game") -> Optional[SplitPotWinners]:
        """Winners of half the pot, the card that won it and a description."""
        return None

    def variant_actions(self, game: "Game", participant: Participant) -> List[Action]:
        return []

    def handle_variant_action(self, game: "Game", participant: Participant, action: Action) -> bool:
        return False

    def is_phase_pending(self) -> bool:
        """True while the variant waits on players and betting is paused."""
        return False

    def variant_state(self, game: "Game", player_id: int) -> Optional[Dict[str, object]]:
        return None

    def on_bet_placed(self, game: "Game") -> None:
        pass


class Stud(Variant):
    key = "stud"

    def name(self) -> str:
        return "Seven-Card Stud"


class Baseball(Variant):
    """3s and 9s are wild; a face-up 4 earns an extra card."""

    key = "baseball"
    max_extra_cards = 3

    def __init__(self) -> None:
        self.extra_cards = 0

    def name(self) -> str:
        return "Baseball"

    def start(self) -> None:
        self.extra_cards = 0

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        if card.rank in (3, 9):
            card.is_wild = True

        if card.rank != 4 or not card.is_bit_set(FACE_UP):
            return
        # a full table would run out of cards
        if len(game.player_ids) >= 7 and self.extra_cards >= self.max_extra_cards:
            return

        extra = game.draw_card()
        self.extra_cards += 1
        game.send_log(simple_log_message(participant.player_id, "{} receives an extra card"))
        game.deal_card(participant, extra)


class FollowTheQueen(Variant):
    """Queens are wild, as is the rank of the card dealt face up after a queen."""

    key = "follow-the-queen"

    def __init__(self) -> None:
        self.wild_rank = 0
        self.queen_was_flipped = False

    def name(self) -> str:
        return "Follow the Queen"

    def start(self) -> None:
        self.wild_rank = 0
        self.queen_was_flipped = False

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        wild_did_change = False
        if card.is_bit_set(FACE_UP) and card.rank == QUEEN:
            self.queen_was_flipped = True
            wild_did_change = True
        else:
            if self.queen_was_flipped and card.is_bit_set(FACE_UP):
                self.wild_rank = card.rank
                wild_did_change = True
            self.queen_was_flipped = False

        if not wild_did_change:
            card.is_wild = self._is_wild(card)
            return

        LOGGER.debug("Follow the Queen wild rank is now %d", self.wild_rank)
        for other in game.participants.values():
            for held in other.hand:
                held.is_wild = self._is_wild(held)

    def _is_wild(self, card: Card) -> bool:
        return card.rank == QUEEN or card.rank == self.wild_rank

    def variant_state(self, game: "Game", player_id: int) -> Optional[Dict[str, object]]:
        return {"wildRank": self.wild_rank}


class HighChicago(Variant):
    """The highest spade in the hole takes half the pot."""

    key = "high-chicago"

    def name(self) -> str:
        return "High Chicago"

    def split_pot_winners(self, game: "Game") -> Optional[SplitPotWinners]:
        best: Optional[Card] = None
        winners: List[Participant] = []
        for participant in game.alive_participants():
            spades = [
                card
                for card in participant.live_cards()
                if card.suit == Suit.SPADES and not card.is_bit_set(FACE_UP)
            ]
            if not spades:
                continue
            high = max(spades, key=lambda card: card.rank)
            if best is None or high.rank > best.rank:
                best = high
                winners = [participant]
            elif high.rank == best.rank:
                winners.append(participant)

        if best is None:
            return None
        return winners, best, "high spade in the hole"


class LowCardWild(Variant):
    """Each player's lowest hole card is wild for that player alone."""

    key = "low-card-wild"

    def name(self) -> str:
        return "Low Card Wild"

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        hole_ranks = [held.rank for held in participant.hand if not held.is_bit_set(FACE_UP)]
        lowest = min(hole_ranks) if hole_ranks else 0

        for held in participant.hand:
            held.is_wild = held.rank == lowest
            # a face-up wild is only wild in its owner's eyes
            if held.is_wild and held.is_bit_set(FACE_UP):
                held.set_bit(PRIVATE_WILD)
            else:
                held.unset_bit(PRIVATE_WILD)


class CouponsAndClippings(Variant):
    """3s start wild. A face-up 10♠ clips them; a face-up 10♢ makes 2s wild."""

    key = "coupons-and-clippings"

    def __init__(self) -> None:
        self.threes_wild = True
        self.twos_wild = False
        self.splash_player_ids: List[int] = []
        self._deal_round = -1

    def name(self) -> str:
        return "Coupons and Clippings"

    def start(self) -> None:
        self.threes_wild = True
        self.twos_wild = False
        self.splash_player_ids = []
        self._deal_round = -1

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        if game.round != self._deal_round:
            self._deal_round = game.round
            self.splash_player_ids = []

        if card.is_bit_set(FACE_UP) and card.rank == 10:
            if card.suit == Suit.SPADES and self.threes_wild:
                self.threes_wild = False
                self._splash(game, participant, card, "{} flips the %s, 3s are no longer wild")
            elif card.suit == Suit.DIAMONDS and not self.twos_wild:
                self.twos_wild = True
                self._splash(game, participant, card, "{} flips the %s, 2s are now wild")

        card.is_wild = self._is_wild(card)

    def _splash(self, game: "Game", participant: Participant, card: Card, fmt: str) -> None:
        self.splash_player_ids.append(participant.player_id)
        for other in game.participants.values():
            for held in other.hand:
                held.is_wild = self._is_wild(held)
        game.send_log(simple_log_message(participant.player_id, fmt, card))

    def _is_wild(self, card: Card) -> bool:
        return (card.rank == 3 and self.threes_wild) or (card.rank == 2 and self.twos_wild)

    def variant_state(self, game: "Game", player_id: int) -> Optional[Dict[str, object]]:
        return {
            "threesWild": self.threes_wild,
            "twosWild": self.twos_wild,
            "splashPlayerIds": list(self.splash_player_ids),
        }
