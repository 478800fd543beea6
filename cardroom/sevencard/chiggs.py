from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from ..deck import Card, Suit
from ..playable import simple_log_message
from .game import FACE_UP, IS_ANTIDOTE, IS_MUSHROOM, WAS_DISCARDED, Action, Participant, Round
from .variants import Variant

if TYPE_CHECKING:
    from .game import Game

LOGGER = logging.getLogger(__name__)


class Chiggs(Variant):
    """All 4s are wild. The 4♣ is a mushroom: when it shows, both neighbors
    must play an antidote (any other 4) or fold.

    A mushroom dealt face up stays in its owner's hand. A mushroom in the hole
    can be flipped (and discarded) until the first bet of a round, after which
    every face-down mushroom is locked for good.
    """

    key = "chiggs"

    def __init__(self) -> None:
        self.start()

    def name(self) -> str:
        return "7 Card Chiggs"

    def start(self) -> None:
        self.mushroom_active = False
        self.mushroom_holder_id = 0
        self.pending_responses: Set[int] = set()
        self.face_down_mushrooms: Dict[int, Card] = {}
        self.locked_mushrooms: Set[int] = set()
        self.last_antidote_played: Optional[Dict[str, object]] = None
        self.last_mushroom_folds: List[int] = []

    def participant_received_card(self, game: "Game", participant: Participant, card: Card) -> None:
        if card.rank != 4:
            return

        card.is_wild = True
        if card.suit == Suit.CLUBS:
            card.set_bit(IS_MUSHROOM)
        else:
            card.set_bit(IS_ANTIDOTE)

        if not card.is_bit_set(IS_MUSHROOM):
            return
        if card.is_bit_set(FACE_UP):
            self._trigger_mushroom_event(game, participant, card, was_flipped=False)
        else:
            self.face_down_mushrooms[participant.player_id] = card

    # Mushroom events -------------------------------------------------
    def _trigger_mushroom_event(self, game: "Game", holder: Participant, mushroom: Card, was_flipped: bool) -> None:
        self.mushroom_active = True
        self.mushroom_holder_id = holder.player_id
        self.pending_responses = set()
        self.last_antidote_played = None
        self.last_mushroom_folds = []

        game.send_log(simple_log_message(holder.player_id, "{} reveals a mushroom!"))
        LOGGER.debug("Mushroom revealed by %d", holder.player_id)

        for neighbor_id in self._neighbors(game, holder.player_id):
            neighbor = game.participants[neighbor_id]
            if neighbor.did_fold:
                continue
            if _find_antidote(neighbor) is not None:
                self.pending_responses.add(neighbor_id)
                continue
            neighbor.did_fold = True
            self.last_mushroom_folds.append(neighbor_id)
            game.send_log(simple_log_message(neighbor_id, "{} has no antidote and folds!"))

        # only a flipped mushroom leaves the hand; a dealt one stays wild
        if was_flipped:
            mushroom.set_bit(FACE_UP)
            mushroom.set_bit(WAS_DISCARDED)

        if not self.pending_responses:
            self.mushroom_active = False
            game.check_for_win_by_fold()
        game.advance_decision_if_player_did_fold()

    def _neighbors(self, game: "Game", player_id: int) -> List[int]:
        n = len(game.player_ids)
        idx = game.player_ids.index(player_id)
        neighbors: List[int] = []
        for neighbor_idx in ((idx - 1) % n, (idx + 1) % n):
            neighbor_id = game.player_ids[neighbor_idx]
            if neighbor_id != player_id and neighbor_id not in neighbors:
                neighbors.append(neighbor_id)
        return neighbors

    def _can_flip(self, game: "Game", player_id: int) -> bool:
        card = self.face_down_mushrooms.get(player_id)
        if card is None or card.is_bit_set(WAS_DISCARDED):
            return False
        if game.participants[player_id].did_fold:
            return False
        round_over = game.get_current_turn() is None and game.round <= Round.FINAL_BETTING
        return not self.mushroom_active and player_id not in self.locked_mushrooms and not round_over

    # Actions ---------------------------------------------------------
    def variant_actions(self, game: "Game", participant: Participant) -> List[Action]:
        actions: List[Action] = []
        if self.mushroom_active and participant.player_id in self.pending_responses:
            actions.append(Action.PLAY_ANTIDOTE)
        if self._can_flip(game, participant.player_id):
            actions.append(Action.FLIP_MUSHROOM)
        return actions

    def handle_variant_action(self, game: "Game", participant: Participant, action: Action) -> bool:
        if action == Action.FLIP_MUSHROOM:
            return self._flip_mushroom(game, participant)
        if action == Action.PLAY_ANTIDOTE:
            return self._play_antidote(game, participant)
        return False

    def _flip_mushroom(self, game: "Game", participant: Participant) -> bool:
        if not self._can_flip(game, participant.player_id):
            return False
        mushroom = self.face_down_mushrooms.pop(participant.player_id)
        self._trigger_mushroom_event(game, participant, mushroom, was_flipped=True)
        return True

    def _play_antidote(self, game: "Game", participant: Participant) -> bool:
        if participant.player_id not in self.pending_responses:
            return False
        antidote = _find_antidote(participant)
        if antidote is None:
            return False

        antidote.set_bit(WAS_DISCARDED)
        antidote.is_wild = False
        self.last_antidote_played = {"playerId": participant.player_id, "card": antidote.to_dict()}
        self.pending_responses.discard(participant.player_id)
        game.send_log(simple_log_message(participant.player_id, "{} plays an antidote!"))

        if not self.pending_responses:
            self.mushroom_active = False
            game.check_for_win_by_fold()
        return True

    def is_phase_pending(self) -> bool:
        return self.mushroom_active and bool(self.pending_responses)

    def on_bet_placed(self, game: "Game") -> None:
        self.locked_mushrooms.update(self.face_down_mushrooms)

    def variant_state(self, game: "Game", player_id: int) -> Optional[Dict[str, object]]:
        return {
            "mushroomActive": self.mushroom_active,
            "mushroomHolderId": self.mushroom_holder_id,
            "antidotePlayed": self.last_antidote_played,
            "mushroomFolds": [{"playerId": folded} for folded in self.last_mushroom_folds],
            "canFlipMushroom": player_id in game.participants and self._can_flip(game, player_id),
        }


def _find_antidote(participant: Participant) -> Optional[Card]:
    for card in participant.hand:
        if card.is_bit_set(IS_ANTIDOTE) and not card.is_bit_set(WAS_DISCARDED):
            return card
    return None
