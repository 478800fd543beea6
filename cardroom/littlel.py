from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .deck import Card, Deck, EndOfDeck, Hand
from .errors import ConfigError, IllegalActionError, ResourceError, TurnError
from .handanalyzer import AnalyzedHand, analyze
from .playable import (
    Clock,
    GameOverDetails,
    LogMessage,
    PayloadIn,
    Playable,
    Response,
    Scheduler,
    Tickable,
    ok_response,
    simple_log_message,
)
from .potmanager import PotManager, WinManager

LOGGER = logging.getLogger(__name__)

MAX_PARTICIPANTS = 10
DEFAULT_TABLE_STAKE = 1000
COMMUNITY_SIZE = 3
# at most this many community cards go into a hand
COMMUNITY_CARDS_USED = 2
HAND_SIZE = 3
END_DELAY = 3.0


class Round(IntEnum):
    TRADE_IN = 0
    BEFORE_FIRST_TURN = 1
    BEFORE_SECOND_TURN = 2
    BEFORE_THIRD_TURN = 3
    FINAL_BETTING_ROUND = 4
    REVEAL_WINNER = 5


class Action(str, Enum):
    TRADE = "trade"
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"

    @classmethod
    def from_string(cls, value: str) -> "Action":
        try:
            return cls(value)
        except ValueError:
            raise IllegalActionError(f"unknown action: {value}") from None

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    def to_dict(self) -> dict:
        return {"id": self.value, "name": self.display_name}


class TradeIns:
    """The numbers of cards a participant may trade in."""

    def __init__(self, counts: Sequence[int], initial_deal: int) -> None:
        if not counts:
            counts = [0]
        for count in counts:
            if count < 0 or count > initial_deal:
                raise ConfigError(f"invalid trade-in option: {count}")
        self.counts = sorted(set(counts))

    def can_trade(self, count: int) -> bool:
        return count in self.counts

    def __str__(self) -> str:
        return ", ".join(str(count) for count in self.counts)

    def to_dict(self) -> Dict[str, bool]:
        return {str(count): True for count in self.counts}


@dataclass
class LittleLOptions:
    ante: int = 25
    initial_deal: int = 4
    trade_ins: List[int] = field(default_factory=lambda: [0, 2])

    def validate(self) -> None:
        if self.ante <= 0:
            raise ConfigError("ante must be greater than zero")
        if self.initial_deal < 3 or self.initial_deal > 5:
            raise ConfigError("the initial deal must be between 3 and 5 cards")
        TradeIns(self.trade_ins, self.initial_deal)


def name_from_options(options: LittleLOptions) -> str:
    trade_ins = TradeIns(options.trade_ins, options.initial_deal)
    return f"{options.initial_deal}-Card Little L (trade: {trade_ins})"


def sort_hand(hand: Hand) -> None:
    hand.cards.sort(key=lambda card: (card.suit.value, card.rank))


@dataclass
class Participant:
    player_id: int
    table_stake: int
    hand: Hand = field(default_factory=Hand)
    # net chips won or lost this game
    net: int = 0
    bet: int = 0
    folded: bool = False
    traded: int = 0
    winnings: int = 0

    @property
    def balance(self) -> int:
        return self.table_stake + self.net

    def adjust_balance(self, amount: int) -> None:
        self.net += amount

    def set_amount_in_play(self, amount: int) -> None:
        self.bet = amount

    def best_hand(self, community: Sequence[Optional[Card]]) -> Tuple[List[Card], AnalyzedHand]:
        """Best three-card hand from the private cards and up to two revealed community cards."""
        revealed = [card for card in community if card is not None]
        best: Optional[Tuple[List[Card], AnalyzedHand]] = None
        for size in range(min(COMMUNITY_CARDS_USED, len(revealed)) + 1):
            for shared in combinations(revealed, size):
                cards = list(self.hand) + list(shared)
                analyzed = analyze(HAND_SIZE, cards)
                if best is None or analyzed.strength > best[1].strength:
                    best = cards, analyzed
        assert best is not None
        return best

    def to_dict(self, show_cards: bool, community: Sequence[Optional[Card]] = ()) -> dict:
        data = {
            "playerId": self.player_id,
            "didFold": self.folded,
            "balance": self.net,
            "stack": self.balance,
            "currentBet": self.bet,
            "traded": self.traded,
            "hand": None,
            "handRank": "",
        }
        if show_cards and len(self.hand) >= HAND_SIZE:
            data["hand"] = [card.to_dict() for card in self.hand]
            data["handRank"] = "Folded" if self.folded else self.best_hand(community)[1].name
        return data


class Game(Playable, Tickable):
    """Little L: trade in, then bet as the three community cards are revealed.

    Betting is pot limit and sequenced by the :class:`PotManager`. The round
    advances on ``tick`` once everybody has acted.
    """

    def __init__(
        self,
        player_ids: Sequence[int],
        options: Optional[LittleLOptions] = None,
        seed: int = 0,
        clock: Optional[Clock] = None,
        stakes: Optional[Mapping[int, int]] = None,
    ) -> None:
        super().__init__()
        options = options or LittleLOptions()
        options.validate()
        if len(player_ids) < 2:
            raise ConfigError("you must have at least two participants")
        if len(player_ids) > MAX_PARTICIPANTS:
            raise ConfigError(f"you cannot have more than {MAX_PARTICIPANTS} participants")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.trade_ins = TradeIns(options.trade_ins, options.initial_deal)
        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.scheduler = Scheduler(clock)

        self.pot_manager = PotManager(options.ante)
        self.participants: Dict[int, Participant] = {}
        self.participant_order: List[Participant] = []
        for player_id in player_ids:
            stake = DEFAULT_TABLE_STAKE if stakes is None else stakes.get(player_id, 0)
            participant = Participant(player_id, table_stake=stake)
            self.pot_manager.seat_participant(participant)
            self.participants[player_id] = participant
            self.participant_order.append(participant)
        self.pot_manager.finish_seating_participants()
        # trading carries no betting
        self.pot_manager.start_decision_round()

        self.round = Round.TRADE_IN
        self.community: List[Card] = []
        self.discards: List[Card] = []
        self.dealt = False
        self.winners: Optional[Dict[int, int]] = None
        self.finished = False

        self.send_log(
            simple_log_message(
                0, "New game of Little L started (ante: ${%d}; trades: %s)", options.ante, str(self.trade_ins)
            )
        )

    # Dealing ---------------------------------------------------------
    def deal_cards(self) -> None:
        if self.dealt:
            raise RuntimeError("cards have already been dealt")

        for _ in range(self.options.initial_deal):
            for participant in self.participant_order:
                participant.hand.add_card(self._draw())
        for participant in self.participant_order:
            sort_hand(participant.hand)
        self.community = [self._draw() for _ in range(COMMUNITY_SIZE)]
        self.dealt = True

    def _draw(self) -> Card:
        try:
            return self.deck.draw()
        except EndOfDeck as exc:
            raise ResourceError(f"could not deal cards: {exc}") from exc

    def get_community_cards(self) -> List[Optional[Card]]:
        """The community cards, ``None`` for the ones not yet revealed."""
        return [
            card if self.round > Round.BEFORE_FIRST_TURN + idx else None
            for idx, card in enumerate(self.community)
        ] + [None] * (COMMUNITY_SIZE - len(self.community))

    def can_reveal_cards(self) -> bool:
        return self.round >= Round.REVEAL_WINNER

    # Turns -----------------------------------------------------------
    def get_current_turn(self) -> Optional[Participant]:
        if not self.dealt or self.is_game_over():
            return None
        in_turn = self.pot_manager.get_in_turn_participant()
        if in_turn is None:
            return None
        return self.participants[in_turn.player_id]

    def is_round_over(self) -> bool:
        return self.pot_manager.is_round_over()

    def is_game_over(self) -> bool:
        return self.winners is not None

    def next_round(self) -> None:
        if self.round == Round.REVEAL_WINNER or self.is_game_over():
            raise TurnError("cannot advance the round")
        if not self.dealt or not self.is_round_over():
            raise TurnError("round is not over")

        self.pot_manager.next_round()
        self.round = Round(self.round + 1)
        LOGGER.debug("Little L round %s", self.round.name)
        if self.round == Round.REVEAL_WINNER:
            self.end_game()

    def trade_cards(self, participant: Participant, cards: Sequence[Card]) -> None:
        if self.round != Round.TRADE_IN:
            raise TurnError("we are not in the trade-in round")
        if self.get_current_turn() is not participant:
            raise TurnError("it is not your turn")
        if not self.trade_ins.can_trade(len(cards)):
            raise IllegalActionError(f"the valid trade-ins are: {self.trade_ins}; you tried to trade {len(cards)}")
        for card in cards:
            if not participant.hand.has_card(card):
                raise IllegalActionError(f"you do not have {card} in your hand")
        if len(set(cards)) != len(cards):
            raise IllegalActionError("invalid trade-in")

        discards: List[Card] = []
        for card in cards:
            participant.hand.discard(card, 1)
            discards.append(card)
            if not self.deck.can_draw(1):
                self.deck.shuffle_discards(self.discards)
                self.discards = []
            participant.hand.add_card(self._draw())
        # the cards just traded only come back after this trade
        self.discards.extend(discards)
        sort_hand(participant.hand)

        participant.traded = len(cards)
        self.pot_manager.advance_decision()

    # Betting ---------------------------------------------------------
    def _check_betting(self) -> None:
        if self.round == Round.TRADE_IN:
            raise TurnError("you must trade first")
        if self.is_game_over():
            raise TurnError("game is over")

    def participant_checks(self, participant: Participant) -> None:
        self._check_betting()
        self.pot_manager.participant_checks(participant)

    def participant_calls(self, participant: Participant) -> None:
        self._check_betting()
        self.pot_manager.participant_calls(participant)

    def participant_folds(self, participant: Participant) -> None:
        self._check_betting()
        self.pot_manager.participant_folds(participant)
        participant.folded = True

        alive = self.alive_participants()
        if not alive:
            raise RuntimeError("too many players folded")
        if len(alive) == 1:
            self.end_game()

    def participant_bets(self, participant: Participant, amount: int) -> None:
        """Bet or raise to ``amount``; an all-in may go under the minimums."""
        self._check_betting()
        if not self.pot_manager.is_participant_your_turn(participant):
            raise TurnError("it is not your turn")

        current_bet = self.pot_manager.get_bet()
        term = Action.RAISE.value if current_bet > 0 else Action.BET.value
        all_in = amount == self.pot_manager.get_participant_all_in_amount(participant)
        ante = self.options.ante

        if amount % ante and not all_in:
            raise IllegalActionError(f"your {term} must be in multiples of ${{{ante}}}")
        pot_limit = self.pot_manager.get_pot_limit_max_bet()
        if amount > pot_limit:
            raise IllegalActionError(f"your {term} (${{{amount}}}) must not exceed the pot limit (${{{pot_limit}}})")
        if amount < ante and not all_in:
            raise IllegalActionError(f"your {term} must at least match the ante (${{{ante}}})")
        previous_raise = self.pot_manager.get_raise()
        if current_bet > 0 and amount - current_bet < previous_raise and not all_in:
            raise IllegalActionError(
                f"your raise of ${{{amount - current_bet}}} must be at least equal to the previous raise of ${{{previous_raise}}}"
            )

        self.pot_manager.participant_bets_or_raises(participant, amount)

    def alive_participants(self) -> List[Participant]:
        return [participant for participant in self.participant_order if not participant.folded]

    def get_min_bet(self) -> int:
        current_bet = self.pot_manager.get_bet()
        if current_bet > 0:
            return current_bet + self.pot_manager.get_raise()
        return self.options.ante

    def actions_for_participant(self, player_id: int) -> List[Action]:
        participant = self.participants.get(player_id)
        if participant is None or participant is not self.get_current_turn():
            return []
        if self.round == Round.TRADE_IN:
            return [Action.TRADE]

        to_call = self.pot_manager.amount_to_call(participant)
        can_raise = participant.balance > to_call
        if self.pot_manager.get_bet() == 0:
            return [Action.CHECK] + ([Action.BET] if can_raise else []) + [Action.FOLD]
        return [Action.CALL] + ([Action.RAISE] if can_raise else []) + [Action.FOLD]

    def future_actions_for_participant(self, player_id: int) -> List[Action]:
        participant = self.participants.get(player_id)
        if participant is None or participant.folded or self.get_current_turn() is None:
            return []
        if not self.pot_manager.is_participant_yet_to_act(participant):
            return []
        if self.round == Round.TRADE_IN:
            return [Action.TRADE]
        if self.pot_manager.amount_to_call(participant) == 0:
            return [Action.CHECK, Action.FOLD]
        return [Action.CALL, Action.FOLD]

    # Game over -------------------------------------------------------
    def end_game(self) -> None:
        if self.winners is not None:
            raise RuntimeError("end_game() already called")

        self.round = Round.REVEAL_WINNER
        self.pot_manager.end_game()
        community = self.get_community_cards()
        win_manager = WinManager()
        for participant in self.alive_participants():
            win_manager.add_participant(participant, participant.best_hand(community)[1].strength)

        self.winners = self.pot_manager.pay_winners(win_manager.get_sorted_tiers())
        for player_id, amount in self.winners.items():
            self.participants[player_id].winnings = amount
        self._send_end_of_game_logs()
        LOGGER.debug("Little L game over, payouts %s", self.winners)

    def _send_end_of_game_logs(self) -> None:
        community = self.get_community_cards()
        logs: List[LogMessage] = []
        winners = [p for p in self.participant_order if p.player_id in (self.winners or {})]
        for winner in winners:
            hand = winner.best_hand(community)[1].name
            logs.append(simple_log_message(winner.player_id, "{} had a %s and won ${%d}", hand, winner.net))
        for participant in self.participant_order:
            if participant in winners:
                continue
            if participant.folded:
                logs.append(simple_log_message(participant.player_id, "{} folded and lost ${%d}", -participant.net))
            else:
                hand = participant.best_hand(community)[1].name
                logs.append(
                    simple_log_message(participant.player_id, "{} had a %s and lost ${%d}", hand, -participant.net)
                )
        self.send_log(*logs)

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return name_from_options(self.options)

    def key(self) -> str:
        return "little-l"

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        participant = self.participants.get(player_id)
        if participant is None:
            raise TurnError("participant is not in the game")
        action = Action.from_string(message.action)
        if not self.dealt:
            raise TurnError("cards have not been dealt yet")

        if action == Action.TRADE:
            self.trade_cards(participant, message.cards)
            self.send_log(simple_log_message(player_id, "{} traded %d", len(message.cards)))
        elif action == Action.CHECK:
            self.participant_checks(participant)
            self.send_log(simple_log_message(player_id, "{} checks"))
        elif action == Action.CALL:
            self.participant_calls(participant)
            self.send_log(simple_log_message(player_id, "{} calls"))
        elif action == Action.FOLD:
            self.participant_folds(participant)
            self.send_log(simple_log_message(player_id, "{} folds"))
        else:
            amount = message.get_int("amount") or 0
            if amount <= 0:
                raise IllegalActionError("amount must be > 0")
            self.participant_bets(participant, amount)
            if action == Action.RAISE:
                self.send_log(simple_log_message(player_id, "{} raises to ${%d}", amount))
            else:
                self.send_log(simple_log_message(player_id, "{} bets ${%d}", amount))
        return ok_response(), True

    def get_player_state(self, player_id: int) -> Response:
        participant = self.participants.get(player_id)
        community = self.get_community_cards()
        current = self.get_current_turn()
        data = {
            "participant": participant.to_dict(show_cards=True, community=community) if participant else None,
            "gameState": {
                "name": self.name(),
                "participants": [
                    p.to_dict(self.can_reveal_cards() and not p.folded, community) for p in self.participant_order
                ],
                "dealerId": self.participant_order[0].player_id,
                "round": int(self.round),
                "action": current.player_id if current else 0,
                "tradeIns": self.trade_ins.to_dict(),
                "initialDeal": self.options.initial_deal,
                "winners": dict(self.winners) if self.winners else None,
            },
            "pokerState": {
                "ante": self.options.ante,
                "currentBet": self.pot_manager.get_bet(),
                "minBet": self.get_min_bet(),
                "maxBet": self.pot_manager.get_pot_limit_max_bet(),
                "pots": [pot.to_dict(self.pot_manager.table_order) for pot in self.pot_manager.pots],
                "community": [card.to_dict() if card else None for card in community],
            },
            "actions": [action.to_dict() for action in self.actions_for_participant(player_id)],
            "futureActions": [action.to_dict() for action in self.future_actions_for_participant(player_id)],
        }
        return Response(key="game", value=self.key(), data=data)

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if not self.finished:
            return None, False
        community = self.get_community_cards()
        adjustments = {participant.player_id: participant.net for participant in self.participant_order}
        log = {
            "hands": {p.player_id: p.to_dict(True, community) for p in self.participant_order},
            "community": [card.to_dict() for card in self.community],
        }
        return GameOverDetails(balance_adjustments=adjustments, log=log), True

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        if self.scheduler.is_pending():
            return self.scheduler.tick()
        if self.finished:
            return False
        if self.is_game_over():
            self.scheduler.schedule(END_DELAY, self._finish, "finish")
            return False
        if not self.dealt:
            self.deal_cards()
            return True
        if self.is_round_over():
            self.next_round()
            return True
        return False

    def _finish(self) -> None:
        self.finished = True

    def pot(self) -> int:
        return self.pot_manager.pots_total() + self.pot_manager.amount_in_play
