from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from ..deck import SUITS, Card, Deck, EndOfDeck, Hand
from ..errors import ConfigError, IllegalActionError, ResourceError, TurnError
from ..handanalyzer import AnalyzedHand, HandAnalyzer
from ..playable import (
    Clock,
    GameOverDetails,
    LogMessage,
    PayloadIn,
    Playable,
    Response,
    Scheduler,
    Tickable,
    simple_log_message,
)
from ..potmanager import split_amount

if TYPE_CHECKING:
    from .variants import Variant

LOGGER = logging.getLogger(__name__)

# Card bit flags used by seven-card games
FACE_UP = 1 << 0
PRIVATE_WILD = 1 << 1
IS_MUSHROOM = 1 << 2
IS_ANTIDOTE = 1 << 3
WAS_DISCARDED = 1 << 4

MIN_PLAYERS = 2
MAX_PLAYERS = 7
DONE_DELAY = 2.0


class Round(IntEnum):
    BEFORE_DEAL = 0  # no cards
    FIRST_BETTING = 1  # 2D, 1U
    SECOND_BETTING = 2  # 2D, 2U
    THIRD_BETTING = 3  # 2D, 3U
    FOURTH_BETTING = 4  # 2D, 4U
    FINAL_BETTING = 5  # 2D, 4U, 1D
    REVEAL_WINNER = 6


class Action(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    BET = "bet"
    RAISE = "raise"
    CALL = "call"
    END_GAME = "end-game"
    FLIP_MUSHROOM = "flip-mushroom"
    PLAY_ANTIDOTE = "play-antidote"

    @classmethod
    def from_string(cls, value: str) -> "Action":
        try:
            return cls(value)
        except ValueError:
            raise IllegalActionError(f"unknown action: {value}") from None

    @property
    def display_name(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("-"))

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.value, "name": self.display_name}


BETTING_ACTIONS = {Action.FOLD, Action.CHECK, Action.BET, Action.RAISE, Action.CALL}


@dataclass
class SevenCardOptions:
    variant: Optional["Variant"] = None
    ante: int = 25

    def validate(self) -> None:
        if self.ante <= 0:
            raise ConfigError("ante must be greater than zero")
        if self.ante % 25 != 0:
            raise ConfigError("ante must be divisible by 25")
        if self.variant is None:
            raise ConfigError("seven-card variant must be specified")


@dataclass
class Participant:
    player_id: int
    balance: int = 0
    hand: Hand = field(default_factory=Hand)
    did_fold: bool = False
    current_bet: int = 0
    did_win: bool = False

    def reset_for_new_round(self) -> None:
        self.current_bet = 0

    def live_cards(self) -> List[Card]:
        return [card for card in self.hand if not card.is_bit_set(WAS_DISCARDED)]

    def face_up_cards(self) -> List[Card]:
        return [card for card in self.live_cards() if card.is_bit_set(FACE_UP)]

    def analyze(self, analyzer: HandAnalyzer) -> Optional[AnalyzedHand]:
        cards = self.live_cards()
        if not cards:
            return None
        return analyzer.analyze(cards)

    def hand_rank(self, analyzer: HandAnalyzer) -> str:
        result = self.analyze(analyzer)
        return result.name if result else ""

    def showing_strength(self, analyzer: HandAnalyzer) -> int:
        """Strength of the face-up cards alone, wilds counted at face value."""
        cards = []
        for card in self.face_up_cards():
            shown = card.copy()
            shown.is_wild = False
            cards.append(shown)
        if not cards:
            return -1
        return analyzer.analyze(cards).strength


class Game(Playable, Tickable):
    """A single hand of seven-card poker played under a pluggable variant."""

    def __init__(
        self,
        player_ids: Sequence[int],
        options: SevenCardOptions,
        seed: int = 0,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__()
        options.validate()
        if not MIN_PLAYERS <= len(player_ids) <= MAX_PLAYERS:
            raise ConfigError(f"expected between {MIN_PLAYERS} and {MAX_PLAYERS} players, got {len(player_ids)}")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.variant: "Variant" = options.variant  # type: ignore[assignment]
        self.player_ids = list(player_ids)
        self.participants: Dict[int, Participant] = {
            player_id: Participant(player_id, balance=-options.ante) for player_id in self.player_ids
        }

        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.scheduler = Scheduler(clock)
        self.hand_analyzer = HandAnalyzer(5)

        self.round = Round.BEFORE_DEAL
        self.pot = options.ante * len(self.player_ids)
        self.current_bet = 0
        # decision_start is the seat that opened the action (or last bet)
        self.decision_start = 0
        self.decision_count = 0
        self.winners: Optional[List[Participant]] = None
        self.payouts: Dict[int, int] = {}
        self.done = False
        self._dealing = False

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return self.variant.name()

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        participant = self.participants.get(player_id)
        if participant is None:
            raise TurnError("player not found")

        action = Action.from_string(message.action)
        if action in BETTING_ACTIONS and self.variant.is_phase_pending():
            raise TurnError("waiting for players to respond")

        if action == Action.FOLD:
            self.participant_folds(participant)
        elif action == Action.CHECK:
            self.participant_checks(participant)
        elif action == Action.CALL:
            self.participant_calls(participant)
        elif action == Action.BET:
            self.participant_bets(participant, self._amount(message))
        elif action == Action.RAISE:
            self.participant_raises(participant, self._amount(message))
        elif action == Action.END_GAME:
            self.participant_ends_game(participant)
        elif not self.variant.handle_variant_action(self, participant, action):
            raise IllegalActionError(f"you cannot {action.value} right now")
        return None, True

    def get_player_state(self, player_id: int) -> Response:
        return Response(key="game", value="seven-card", data=self.get_player_state_by_player_id(player_id))

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if not self.done:
            return None, False
        adjustments = {player_id: self.participants[player_id].balance for player_id in self.player_ids}
        return GameOverDetails(balance_adjustments=adjustments, log=self.get_game_state()), True

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        if self.round == Round.BEFORE_DEAL:
            self.start()
            return True
        if self.scheduler.tick():
            return True
        if self.is_game_over() and not self.done and not self.scheduler.is_pending():
            self.scheduler.schedule(DONE_DELAY, self._mark_done, "done")
        return False

    def _mark_done(self) -> None:
        self.done = True

    # Dealing ---------------------------------------------------------
    def start(self) -> None:
        if self.round != Round.BEFORE_DEAL:
            raise RuntimeError("the game has already started")

        self.variant.start()
        self.round = Round.FIRST_BETTING
        self._dealing = True
        try:
            for deal_pass in range(3):
                self._deal_to_each(face_up=deal_pass == 2)
        finally:
            self._dealing = False

        if not self.is_game_over():
            self._set_first_to_act()
        LOGGER.debug("Seven-card %s started with %d players", self.name(), len(self.player_ids))

    def _deal_to_each(self, face_up: bool) -> None:
        for player_id in self.player_ids:
            participant = self.participants[player_id]
            if participant.did_fold:
                continue
            if self.is_game_over():
                return
            card = self.deck.draw()
            if face_up:
                card.set_bit(FACE_UP)
            self.deal_card(participant, card)

    def deal_card(self, participant: Participant, card: Card) -> None:
        participant.hand.add_card(card)
        self.variant.participant_received_card(self, participant, card)

    def draw_card(self) -> Card:
        try:
            return self.deck.draw()
        except EndOfDeck as exc:
            raise ResourceError(f"could not deal cards: {exc}") from exc

    def _next_round(self) -> None:
        for participant in self.participants.values():
            participant.reset_for_new_round()
        self.current_bet = 0

        if self.round in (Round.FIRST_BETTING, Round.SECOND_BETTING, Round.THIRD_BETTING):
            face_up = True
            self.round = Round(self.round + 1)
        elif self.round == Round.FOURTH_BETTING:
            face_up = False
            self.round = Round.FINAL_BETTING
        elif self.round == Round.FINAL_BETTING:
            self.end_game()
            return
        else:
            raise RuntimeError(f"round {int(self.round)} is not implemented")

        self._dealing = True
        try:
            try:
                self._deal_to_each(face_up=face_up)
            except EndOfDeck as exc:
                raise ResourceError(f"could not deal cards: {exc}") from exc
        finally:
            self._dealing = False

        LOGGER.debug("Seven-card round %s dealt", self.round.name)
        if not self.is_game_over():
            self._set_first_to_act()

    # Turn order ------------------------------------------------------
    def _set_first_to_act(self) -> None:
        self.decision_count = 0
        n = len(self.player_ids)

        if self.round == Round.FIRST_BETTING:
            # lowest face-up card opens; suits break ties
            best: Optional[Tuple[Tuple[int, int], int]] = None
            for idx, player_id in enumerate(self.player_ids):
                participant = self.participants[player_id]
                if participant.did_fold:
                    continue
                for card in participant.face_up_cards():
                    key = (card.rank, SUITS.index(card.suit))
                    if best is None or key < best[0]:
                        best = (key, idx)
            if best is not None:
                self.decision_start = best[1]
                return
        else:
            # best showing hand opens; ties go to the first seat from the prior opener
            best_idx: Optional[int] = None
            best_strength = -2
            for offset in range(n):
                idx = (self.decision_start + offset) % n
                participant = self.participants[self.player_ids[idx]]
                if participant.did_fold:
                    continue
                strength = participant.showing_strength(self.hand_analyzer)
                if strength > best_strength:
                    best_idx, best_strength = idx, strength
            if best_idx is not None:
                self.decision_start = best_idx
                return

        self.decision_start = next(
            idx for idx, player_id in enumerate(self.player_ids) if not self.participants[player_id].did_fold
        )

    def _participant_at(self, offset: int) -> Participant:
        idx = (self.decision_start + offset) % len(self.player_ids)
        return self.participants[self.player_ids[idx]]

    def get_current_turn(self) -> Optional[Participant]:
        if self.round < Round.FIRST_BETTING or self.round > Round.FINAL_BETTING:
            return None
        if self.decision_count >= len(self.player_ids):
            return None
        participant = self._participant_at(self.decision_count)
        if participant.did_fold:
            raise RuntimeError("decision is on a player who folded")
        return participant

    def advance_decision(self) -> None:
        n = len(self.player_ids)
        self.decision_count += 1
        while self.decision_count < n and self._participant_at(self.decision_count).did_fold:
            self.decision_count += 1
        if self.decision_count >= n:
            self._next_round()

    def advance_decision_if_player_did_fold(self) -> None:
        """Skip past the in-turn seat when it was folded out of turn."""
        if self._dealing or self.is_game_over() or self.round == Round.BEFORE_DEAL:
            return
        if self.decision_count >= len(self.player_ids):
            return
        if self._participant_at(self.decision_count).did_fold:
            self.advance_decision()

    def is_game_over(self) -> bool:
        return self.round == Round.REVEAL_WINNER

    def alive_participants(self) -> List[Participant]:
        return [self.participants[pid] for pid in self.player_ids if not self.participants[pid].did_fold]

    def check_for_win_by_fold(self) -> None:
        if len(self.alive_participants()) == 1 and not self.is_game_over():
            self.end_game()

    def get_max_bet(self) -> int:
        return self.pot + self.current_bet

    # Actions ---------------------------------------------------------
    def _check_turn(self, participant: Participant) -> None:
        if self.get_current_turn() is not participant:
            raise TurnError("it is not your turn")

    def _amount(self, message: PayloadIn) -> int:
        amount = message.get_int("amount")
        if amount is None or amount < 0:
            raise IllegalActionError("amount must be a non-negative integer")
        return amount

    def participant_folds(self, participant: Participant) -> None:
        self._check_turn(participant)
        participant.did_fold = True

        alive = len(self.alive_participants())
        if alive == 1:
            self.end_game()
            return
        if alive == 0:
            raise RuntimeError("too many participants folded")
        self.advance_decision()

    def participant_checks(self, participant: Participant) -> None:
        self._check_turn(participant)
        if self.current_bet > 0:
            raise IllegalActionError("you cannot check with a live bet")
        self.advance_decision()

    def participant_calls(self, participant: Participant) -> None:
        self._check_turn(participant)
        if self.current_bet == 0:
            raise IllegalActionError("there is no bet to call")
        if participant.current_bet >= self.current_bet:
            raise IllegalActionError("you have already matched the bet")

        diff = self.current_bet - participant.current_bet
        self.pot += diff
        participant.balance -= diff
        participant.current_bet = self.current_bet
        self.advance_decision()

    def participant_bets(self, participant: Participant, amount: int) -> None:
        self._check_turn(participant)
        if self.current_bet > 0:
            raise IllegalActionError("you must raise with a live bet")
        self._bet(participant, "bet", amount, self.options.ante)

    def participant_raises(self, participant: Participant, amount: int) -> None:
        self._check_turn(participant)
        if self.current_bet == 0:
            raise IllegalActionError("you cannot raise without a previous bet")
        self._bet(participant, "raise", amount, self.current_bet * 2)

    def _bet(self, participant: Participant, bet_type: str, amount: int, minimum: int) -> None:
        if amount < minimum:
            raise IllegalActionError(f"your {bet_type} must be at least ${{{minimum}}}")
        if amount % self.options.ante:
            raise IllegalActionError(f"your {bet_type} must be divisible by ${{{self.options.ante}}}")
        if amount > self.get_max_bet():
            raise IllegalActionError(f"your {bet_type} must not exceed ${{{self.get_max_bet()}}}")

        diff = amount - participant.current_bet
        self.pot += diff
        self.current_bet = amount
        participant.balance -= diff
        participant.current_bet = amount

        self.variant.on_bet_placed(self)
        # the bettor's seat restarts the orbit
        self.decision_start = self.player_ids.index(participant.player_id)
        self.decision_count = 0
        self.advance_decision()

    def participant_ends_game(self, participant: Participant) -> None:
        if not self.is_game_over():
            raise IllegalActionError("game is not over")
        self.done = True

    # Game over -------------------------------------------------------
    def end_game(self) -> None:
        if self.winners is not None:
            raise RuntimeError("end_game() already called")
        self.round = Round.REVEAL_WINNER

        alive = self.alive_participants()
        pot = self.pot
        split_messages: List[LogMessage] = []

        split_payouts: Dict[int, int] = {}
        split = self.variant.split_pot_winners(self) if len(alive) > 1 else None
        if split is not None:
            split_winners, card, description = split
            split_pot = pot // 2 - (pot // 2) % self.options.ante
            pot -= split_pot
            for winner, amount in zip(split_winners, split_amount(split_pot, len(split_winners))):
                split_payouts[winner.player_id] = amount
                split_messages.append(
                    LogMessage.new([winner.player_id], [card], "{} had the %s (%s) and won ${%d}", description, card, amount)
                )

        hand_winners = self._best_hands(alive)
        hand_payouts = {
            winner.player_id: amount for winner, amount in zip(hand_winners, split_amount(pot, len(hand_winners)))
        }
        messages = [
            simple_log_message(
                winner.player_id,
                "{} had a %s and won ${%d}",
                winner.hand_rank(self.hand_analyzer),
                hand_payouts[winner.player_id],
            )
            for winner in hand_winners
        ]
        messages.extend(split_messages)

        self.payouts = {}
        self.winners = []
        for player_id in self.player_ids:
            if player_id not in hand_payouts and player_id not in split_payouts:
                continue
            amount = hand_payouts.get(player_id, 0) + split_payouts.get(player_id, 0)
            participant = self.participants[player_id]
            participant.balance += amount
            participant.did_win = True
            self.payouts[player_id] = amount
            self.winners.append(participant)

        for player_id in self.player_ids:
            participant = self.participants[player_id]
            if participant.did_win:
                continue
            if participant.did_fold:
                messages.append(simple_log_message(player_id, "{} folded and lost ${%d}", -participant.balance))
            else:
                messages.append(
                    simple_log_message(
                        player_id, "{} had a %s and lost ${%d}", participant.hand_rank(self.hand_analyzer), -participant.balance
                    )
                )
        self.send_log(*messages)
        LOGGER.debug("Seven-card game over, payouts %s", self.payouts)

    def _best_hands(self, alive: List[Participant]) -> List[Participant]:
        if len(alive) == 1:
            return alive
        strengths = {p.player_id: p.analyze(self.hand_analyzer).strength for p in alive}  # type: ignore[union-attr]
        best = max(strengths.values())
        return [p for p in alive if strengths[p.player_id] == best]

    # State -----------------------------------------------------------
    def get_actions_for_participant(self, participant: Participant) -> List[Action]:
        actions: List[Action] = []
        if not self.variant.is_phase_pending() and self.get_current_turn() is participant:
            if self.current_bet == 0:
                actions.extend([Action.FOLD, Action.CHECK, Action.BET])
            else:
                actions.extend([Action.FOLD, Action.CALL, Action.RAISE])
        actions.extend(self.variant.variant_actions(self, participant))
        if self.is_game_over():
            actions.append(Action.END_GAME)
        return actions

    def get_future_actions_for_participant(self, participant: Participant) -> List[Action]:
        if participant.did_fold or self.is_game_over() or self.round == Round.BEFORE_DEAL:
            return []
        if self.get_current_turn() is participant:
            return []
        if self.current_bet > participant.current_bet:
            return [Action.FOLD, Action.CALL]
        return [Action.FOLD, Action.CHECK]

    def _card_json(self, card: Optional[Card], owner: bool) -> Optional[dict]:
        if card is None:
            return None
        data = card.to_dict()
        if not owner and card.is_bit_set(PRIVATE_WILD):
            data["isWild"] = False
        data["faceUp"] = card.is_bit_set(FACE_UP)
        data["discarded"] = card.is_bit_set(WAS_DISCARDED)
        return data

    def _participant_json(self, participant: Participant, hand: List[Optional[dict]], hand_rank: str) -> dict:
        return {
            "playerId": participant.player_id,
            "didFold": participant.did_fold,
            "balance": participant.balance,
            "currentBet": participant.current_bet,
            "hand": hand,
            "handRank": hand_rank,
        }

    def get_game_state(self) -> dict:
        game_over = self.is_game_over()
        current = self.get_current_turn()

        participants = []
        for player_id in self.player_ids:
            participant = self.participants[player_id]
            hand: List[Optional[dict]] = []
            hand_rank = ""
            if not participant.did_fold:
                for card in participant.hand:
                    visible = game_over or card.is_bit_set(FACE_UP)
                    hand.append(self._card_json(card, owner=game_over) if visible else None)
                if game_over:
                    hand_rank = participant.hand_rank(self.hand_analyzer)
            participants.append(self._participant_json(participant, hand, hand_rank))

        return {
            "name": self.name(),
            "participants": participants,
            "currentTurn": current.player_id if current else 0,
            "round": int(self.round),
            "pot": self.pot,
            "ante": self.options.ante,
            "currentBet": self.current_bet,
            "maxBet": self.get_max_bet(),
            "winners": [winner.player_id for winner in self.winners] if self.winners is not None else None,
        }

    def get_player_state_by_player_id(self, player_id: int) -> dict:
        participant = self.participants.get(player_id)
        own = None
        actions = None
        future_actions = None
        if participant is not None:
            own = self._participant_json(
                participant,
                [self._card_json(card, owner=True) for card in participant.hand],
                participant.hand_rank(self.hand_analyzer),
            )
            actions = [action.to_dict() for action in self.get_actions_for_participant(participant)]
            future_actions = [action.to_dict() for action in self.get_future_actions_for_participant(participant)]

        return {
            "gameState": self.get_game_state(),
            "actions": actions,
            "futureActions": future_actions,
            "participant": own,
            "variantState": self.variant.variant_state(self, player_id),
        }
