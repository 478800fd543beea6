from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .deck import Card, Deck, EndOfDeck, Hand, card_from_string
from .errors import ConfigError, IllegalActionError, ResourceError, TurnError
from .handanalyzer import AnalyzedHand, HandAnalyzer
from .playable import (
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
from .potmanager import PotManager, WinManager

LOGGER = logging.getLogger(__name__)

ANTE_MAX = 50
SMALL_BLIND_MAX = 100
DEFAULT_TABLE_STAKE = 1000

DEAL_DELAY = 1.0
FOLD_REVEAL_DELAY = 2.0
END_DELAY = 5.0


class Variant(str, Enum):
    STANDARD = "standard"
    PINEAPPLE = "pineapple"
    LAZY_PINEAPPLE = "lazy-pineapple"

    @property
    def display_name(self) -> str:
        return {
            Variant.STANDARD: "Texas Hold'em",
            Variant.PINEAPPLE: "Pineapple",
            Variant.LAZY_PINEAPPLE: "Lazy Pineapple",
        }[self]

    @property
    def hole_cards(self) -> int:
        return 2 if self == Variant.STANDARD else 3


class DealerState(IntEnum):
    START = 0
    DISCARD_ROUND = 1
    PRE_FLOP_BETTING_ROUND = 2
    DEAL_FLOP = 3
    FLOP_BETTING_ROUND = 4
    DEAL_TURN = 5
    TURN_BETTING_ROUND = 6
    DEAL_RIVER = 7
    FINAL_BETTING_ROUND = 8
    REVEAL_WINNER = 9
    END = 10
    WAITING = 11


BETTING_ROUNDS = {
    DealerState.PRE_FLOP_BETTING_ROUND,
    DealerState.FLOP_BETTING_ROUND,
    DealerState.TURN_BETTING_ROUND,
    DealerState.FINAL_BETTING_ROUND,
}

# dealer state entered once the betting in a round is complete
NEXT_STATE = {
    DealerState.DISCARD_ROUND: DealerState.PRE_FLOP_BETTING_ROUND,
    DealerState.PRE_FLOP_BETTING_ROUND: DealerState.DEAL_FLOP,
    DealerState.FLOP_BETTING_ROUND: DealerState.DEAL_TURN,
    DealerState.TURN_BETTING_ROUND: DealerState.DEAL_RIVER,
    DealerState.FINAL_BETTING_ROUND: DealerState.REVEAL_WINNER,
}


class Action(str, Enum):
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"
    FOLD = "fold"
    DISCARD = "discard"

    @classmethod
    def from_string(cls, value: str) -> "Action":
        try:
            return cls(value)
        except ValueError:
            raise IllegalActionError(f"unknown action: {value}") from None

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    def log_message(self, amount: int) -> str:
        if self == Action.BET:
            return f"bets ${{{amount}}}"
        if self == Action.RAISE:
            return f"raises to ${{{amount}}}"
        return {
            Action.CHECK: "checks",
            Action.CALL: "calls",
            Action.FOLD: "folds",
            Action.DISCARD: "discards a card",
        }[self]


@dataclass
class HoldemOptions:
    variant: Variant = Variant.STANDARD
    ante: int = 0
    lower_limit: int = 25
    upper_limit: int = 50

    def validate(self) -> None:
        if not isinstance(self.variant, Variant):
            raise ConfigError(f"invalid variant: {self.variant}")
        validate_amount("ante", self.ante, 0, ANTE_MAX)
        validate_amount("lower limit", self.lower_limit, 25, SMALL_BLIND_MAX)
        if self.upper_limit != 2 * self.lower_limit:
            raise ConfigError(f"upper limit must be ${{{2 * self.lower_limit}}}")

    # the lower limit is posted as the small blind and the upper limit as the big blind
    @property
    def small_blind(self) -> int:
        return self.lower_limit

    @property
    def big_blind(self) -> int:
        return self.upper_limit

    @property
    def min_bet(self) -> int:
        return max(self.ante, self.big_blind, 25)


def validate_amount(desc: str, number: int, minimum: int, maximum: int) -> None:
    if number % 25:
        raise ConfigError(f"{desc} must be in increments of ${{25}}")
    if number < minimum:
        raise ConfigError(f"{desc} must be at least ${{{minimum}}}")
    if number > maximum:
        raise ConfigError(f"{desc} must be at most ${{{maximum}}}")


def name_from_options(options: HoldemOptions) -> str:
    return f"{options.variant.display_name} (${{{options.lower_limit}}}/${{{options.upper_limit}}})"


@dataclass
class Participant:
    player_id: int
    table_stake: int
    cards: Hand = field(default_factory=Hand)
    # net chips won or lost this game
    net: int = 0
    bet: int = 0
    folded: bool = False
    reveal: bool = False
    result: str = ""
    winnings: int = 0

    @property
    def balance(self) -> int:
        return self.table_stake + self.net

    def adjust_balance(self, amount: int) -> None:
        self.net += amount

    def set_amount_in_play(self, amount: int) -> None:
        self.bet = amount

    def hole_and_community(self, community: Sequence[Card]) -> List[Card]:
        return list(self.cards) + list(community)

    def analyze(self, community: Sequence[Card], analyzer: HandAnalyzer) -> AnalyzedHand:
        return analyzer.analyze(self.hole_and_community(community))

    def to_dict(self, show_cards: bool) -> dict:
        cards = None
        if show_cards or (self.reveal and not self.folded):
            cards = [card.to_dict() for card in self.cards]
        return {
            "playerId": self.player_id,
            "balance": self.net,
            "stack": self.balance,
            "cards": cards,
            "folded": self.folded,
            "bet": self.bet,
            "result": self.result,
            "winnings": self.winnings,
        }


@dataclass
class LastAction:
    action: Action
    player_id: int
    amount: int = 0

    def to_dict(self) -> dict:
        return {"action": self.action.value, "playerId": self.player_id, "amount": self.amount}


class Game(Playable, Tickable):
    """A game of pot-limit Texas Hold'em.

    Bets are chosen by the player in multiples of 25, from the big blind up
    to the pot limit. The dealer advances on ``tick``; betting is sequenced by
    the :class:`PotManager`.
    """

    def __init__(
        self,
        player_ids: Sequence[int],
        options: Optional[HoldemOptions] = None,
        seed: int = 0,
        clock: Optional[Clock] = None,
        stakes: Optional[Mapping[int, int]] = None,
    ) -> None:
        super().__init__()
        options = options or HoldemOptions()
        options.validate()
        if len(player_ids) < 2:
            raise ConfigError("there must be at least two players")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.scheduler = Scheduler(clock)

        self.pot_manager = PotManager(options.ante)
        self.participants: Dict[int, Participant] = {}
        self.participant_order: List[Participant] = []
        logs = [simple_log_message(0, "started a new game of %s", self.name())]
        for player_id in player_ids:
            stake = DEFAULT_TABLE_STAKE if stakes is None else stakes.get(player_id, 0)
            participant = Participant(player_id, table_stake=stake)
            self.pot_manager.seat_participant(participant)
            self.participants[player_id] = participant
            self.participant_order.append(participant)
            if options.ante:
                logs.append(simple_log_message(player_id, "{} paid the ante of ${%d}", options.ante))
        self.pot_manager.finish_seating_participants()
        self.send_log(*logs)

        self.dealer_state = DealerState.START
        self.community = Hand()
        self.hand_analyzer = HandAnalyzer(5)
        self.last_action: Optional[LastAction] = None
        self.finished = False

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return name_from_options(self.options)

    def key(self) -> str:
        return "texas-hold-em"

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        participant = self.participants.get(player_id)
        if participant is None:
            raise TurnError("player not found")

        action = Action.from_string(message.action)
        if not self.in_decision_round():
            raise TurnError("not in a betting round")
        if not self.pot_manager.is_participant_your_turn(participant):
            raise TurnError("it is not your turn")
        allowed = {allowed_action: amount for allowed_action, amount in self.actions_for_participant(player_id)}
        if action not in allowed:
            raise IllegalActionError(f"you cannot {action.value} right now")

        amount = 0
        if action == Action.CHECK:
            self.pot_manager.participant_checks(participant)
        elif action == Action.CALL:
            self.pot_manager.participant_calls(participant)
        elif action in (Action.BET, Action.RAISE):
            requested = message.get_int("amount")
            if requested is None:
                raise IllegalActionError(f"missing amount to {action.value}")
            amount = requested
            self._validate_bet_or_raise(participant, amount)
            self.pot_manager.participant_bets_or_raises(participant, amount)
        elif action == Action.FOLD:
            self.pot_manager.participant_folds(participant)
            participant.folded = True
        elif action == Action.DISCARD:
            self._discard(participant, message)

        self.last_action = LastAction(action, player_id, amount)
        self.send_log(simple_log_message(player_id, "{} %s", action.log_message(amount)))

        if action == Action.FOLD and len(self.alive_participants()) < 2:
            # not enough players left; end the game early
            self._set_pending_dealer_state(DealerState.REVEAL_WINNER, FOLD_REVEAL_DELAY)
        elif self.pot_manager.is_round_over() and not self.scheduler.is_pending():
            self._set_pending_dealer_state(NEXT_STATE[self.dealer_state], DEAL_DELAY)
        return None, True

    def get_player_state(self, player_id: int) -> Response:
        return Response(key="game", value=self.key(), data=self.get_participant_state_by_player_id(player_id))

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if not self.finished:
            return None, False
        adjustments = {participant.player_id: participant.net for participant in self.participant_order}
        return GameOverDetails(balance_adjustments=adjustments, log=self.game_log()), True

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        if self.scheduler.is_pending():
            return self.scheduler.tick()

        if self.dealer_state == DealerState.START:
            self._deal_starting_cards()
            return True
        if self.dealer_state == DealerState.DEAL_FLOP:
            for _ in range(3):
                self._draw_community_card()
            self._enter_betting_round(DealerState.FLOP_BETTING_ROUND)
            return True
        if self.dealer_state == DealerState.DEAL_TURN:
            self._draw_community_card()
            self._enter_betting_round(DealerState.TURN_BETTING_ROUND)
            return True
        if self.dealer_state == DealerState.DEAL_RIVER:
            self._draw_community_card()
            self._enter_betting_round(DealerState.FINAL_BETTING_ROUND)
            return True
        if self.dealer_state == DealerState.REVEAL_WINNER:
            self.end_game()
            return True
        if self.dealer_state == DealerState.END and not self.finished:
            self.finished = True
            return True
        return False

    # Dealer ----------------------------------------------------------
    def _set_pending_dealer_state(self, next_state: DealerState, delay: float) -> None:
        if self.scheduler.is_pending():
            raise RuntimeError("cannot set a pending dealer state while one is already present")
        self.dealer_state = DealerState.WAITING
        self.scheduler.schedule(delay, lambda: self._enter_state(next_state), next_state.name)

    def _enter_state(self, state: DealerState) -> None:
        LOGGER.debug("Hold'em dealer state %s", state.name)
        if state == DealerState.PRE_FLOP_BETTING_ROUND:
            if self.options.variant == Variant.PINEAPPLE:
                self.pot_manager.next_round()
            self._pay_blinds()
            self._enter_betting_round(state)
            return

        if self.pot_manager.is_round_over() and not self.pot_manager.is_game_over:
            self.pot_manager.next_round()
            self.last_action = None
        self.dealer_state = state

    def _enter_betting_round(self, state: DealerState) -> None:
        self.dealer_state = state
        # nobody left who can bet; run out the board
        if self.pot_manager.is_round_over():
            self._set_pending_dealer_state(NEXT_STATE[state], DEAL_DELAY)

    def _pay_blinds(self) -> None:
        small, big = self.pot_manager.pay_blinds(self.options.small_blind, self.options.big_blind)
        self.send_log(
            simple_log_message(small.player_id, "{} paid the small blind of ${%d}", self.options.small_blind),
            simple_log_message(big.player_id, "{} paid the big blind of ${%d}", self.options.big_blind),
        )

    def _draw(self) -> Card:
        try:
            return self.deck.draw()
        except EndOfDeck as exc:
            raise ResourceError(f"could not deal cards: {exc}") from exc

    def _deal_starting_cards(self) -> None:
        if self.dealer_state != DealerState.START:
            raise RuntimeError(f"cannot deal cards from state {int(self.dealer_state)}")

        for _ in range(self.options.variant.hole_cards):
            for participant in self.participant_order:
                participant.cards.add_card(self._draw())

        if self.options.variant == Variant.PINEAPPLE:
            self.dealer_state = DealerState.DISCARD_ROUND
            self.pot_manager.start_decision_round()
            return
        self._set_pending_dealer_state(DealerState.PRE_FLOP_BETTING_ROUND, DEAL_DELAY)

    def _draw_community_card(self) -> None:
        self.community.add_card(self._draw())

    # Betting ---------------------------------------------------------
    def in_betting_round(self) -> bool:
        return self.dealer_state in BETTING_ROUNDS

    def in_decision_round(self) -> bool:
        return self.in_betting_round() or self.dealer_state == DealerState.DISCARD_ROUND

    def get_current_turn(self) -> Optional[Participant]:
        if not self.in_decision_round():
            return None
        in_turn = self.pot_manager.get_in_turn_participant()
        if in_turn is None:
            return None
        return self.participants[in_turn.player_id]

    def bet_range(self, participant: Participant) -> Tuple[int, int]:
        """Smallest and largest totals ``participant`` may bet or raise to.

        Going all-in for less than the minimum is always allowed.
        """
        current_bet = self.pot_manager.get_bet()
        all_in = self.pot_manager.get_participant_all_in_amount(participant)
        if current_bet > 0:
            minimum = current_bet + self.pot_manager.get_raise()
        else:
            minimum = self.options.min_bet
        maximum = min(self.pot_manager.get_pot_limit_max_bet(), all_in)
        return min(minimum, all_in), maximum

    def alive_participants(self) -> List[Participant]:
        return [participant for participant in self.participant_order if not participant.folded]

    def _validate_bet_or_raise(self, participant: Participant, amount: int) -> None:
        if amount % 25:
            raise IllegalActionError("bet must be in increments of ${25}")

        pot_limit = self.pot_manager.get_pot_limit_max_bet()
        all_in = self.pot_manager.get_participant_all_in_amount(participant)
        current_bet = self.pot_manager.get_bet()
        if current_bet > 0:
            if amount > pot_limit:
                raise IllegalActionError(f"raise must not exceed total of ${{{pot_limit}}}")
            if amount <= current_bet:
                raise IllegalActionError("you cannot raise to an amount less than the current bet")
            minimum = current_bet + self.pot_manager.get_raise()
            if amount < all_in and amount < minimum:
                raise IllegalActionError(f"raise must be to at least ${{{minimum}}}")
            return

        if amount > pot_limit:
            raise IllegalActionError(f"bet must be at most ${{{pot_limit}}}")
        if amount < all_in and amount < self.options.min_bet:
            raise IllegalActionError(f"bet must be at least ${{{self.options.min_bet}}}")

    def _discard(self, participant: Participant, message: PayloadIn) -> None:
        text = message.get_str("card")
        if not text:
            raise IllegalActionError("missing card to discard")
        card = card_from_string(text)
        if card is None or not participant.cards.has_card(card):
            raise IllegalActionError("you do not have that card")
        participant.cards.discard(card, 1)
        self.pot_manager.advance_decision()

    def actions_for_participant(self, player_id: int) -> List[Tuple[Action, int]]:
        """Actions ``player_id`` can take now, each with the amount it puts in play.

        Bets and raises carry their minimum; :meth:`bet_range` gives the ceiling.
        """
        participant = self.participants.get(player_id)
        current = self.get_current_turn()
        if participant is None or current is not participant:
            return []

        if self.dealer_state == DealerState.DISCARD_ROUND:
            return [(Action.DISCARD, 0)]
        if not self.in_betting_round():
            return []

        current_bet = self.pot_manager.get_bet()
        to_call = self.pot_manager.amount_to_call(participant)
        actions: List[Tuple[Action, int]] = []
        if to_call == 0:
            actions.append((Action.CHECK, 0))
        else:
            actions.append((Action.CALL, min(to_call, participant.balance)))

        if participant.balance > to_call:
            minimum, maximum = self.bet_range(participant)
            if current_bet < minimum <= maximum:
                actions.append((Action.BET if current_bet == 0 else Action.RAISE, minimum))

        actions.append((Action.FOLD, 0))
        return actions

    def future_actions_for_participant(self, player_id: int) -> List[Action]:
        participant = self.participants.get(player_id)
        if participant is None or not self.in_betting_round():
            return []
        _, future = self.pot_manager.get_participant_allowed_actions(participant)
        return [Action(action) for action in future]

    # Game over -------------------------------------------------------
    def end_game(self) -> None:
        if self.dealer_state != DealerState.REVEAL_WINNER:
            raise RuntimeError(f"cannot end the game from state {int(self.dealer_state)}")

        self.pot_manager.end_game()
        win_manager = WinManager()
        for participant in self.participant_order:
            if participant.folded:
                participant.result = "folded"
                continue
            participant.result = "lost"
            participant.reveal = True
            win_manager.add_participant(participant, participant.analyze(self.community, self.hand_analyzer).strength)

        payouts = self.pot_manager.pay_winners(win_manager.get_sorted_tiers())
        for player_id, amount in payouts.items():
            winner = self.participants[player_id]
            winner.result = "won"
            winner.winnings = amount

        logs: List[LogMessage] = []
        for participant in self.participant_order:
            if participant.folded:
                logs.append(simple_log_message(participant.player_id, "{} folded and lost ${%d}", -participant.net))
                continue
            hand = participant.analyze(self.community, self.hand_analyzer).name
            if participant.result == "won":
                fmt, args = "{} won ${%d} (${%d}) with a %s", (participant.winnings, participant.net, hand)
            else:
                fmt, args = "{} lost ${%d} with a %s", (-participant.net, hand)
            logs.append(LogMessage.new([participant.player_id], list(participant.cards), fmt, *args))
        self.send_log(*logs)

        LOGGER.debug("Hold'em game over, payouts %s", payouts)
        self._set_pending_dealer_state(DealerState.END, END_DELAY)

    # State -----------------------------------------------------------
    def pot(self) -> int:
        return self.pot_manager.pots_total() + self.pot_manager.amount_in_play

    def get_game_state(self) -> dict:
        current = self.get_current_turn()
        return {
            "name": self.name(),
            "dealerState": int(self.dealer_state),
            "community": [card.to_dict() for card in self.community],
            "pot": self.pot(),
            "pots": [pot.to_dict(self.pot_manager.table_order) for pot in self.pot_manager.pots],
            "currentBet": self.pot_manager.get_bet(),
            "participants": [participant.to_dict(show_cards=False) for participant in self.participant_order],
            "currentTurn": current.player_id if current else 0,
            "lastAction": self.last_action.to_dict() if self.last_action else None,
        }

    def get_participant_state_by_player_id(self, player_id: int) -> dict:
        participant = self.participants.get(player_id)
        actions = []
        for action, amount in self.actions_for_participant(player_id):
            entry = {"id": action.value, "name": action.display_name, "amount": amount}
            if action in (Action.BET, Action.RAISE):
                entry["maxAmount"] = self.bet_range(participant)[1]
            actions.append(entry)
        return {
            "actions": actions,
            "futureActions": [
                {"id": action.value, "name": action.display_name} for action in self.future_actions_for_participant(player_id)
            ],
            "participant": participant.to_dict(show_cards=True) if participant else None,
            "gameState": self.get_game_state(),
        }

    def game_log(self) -> dict:
        return {
            "participants": [participant.to_dict(show_cards=True) for participant in self.participant_order],
            "community": [card.to_dict() for card in self.community],
            "pot": self.pot(),
        }
