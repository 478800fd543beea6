from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .deck import ACE, LOW_ACE, Card, Deck
from .errors import ConfigError, IllegalActionError, TurnError
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

LOGGER = logging.getLogger(__name__)

MIN_BET = 25
# fixed stake for a half-pot bet on a one-card gap
BET_THE_GAP_AMOUNT = 50

GAME_OVER_DELAY = 1.0
COMPLETE_DELAY = 2.0

# first-card ace bits
ACE_UNDECIDED = 1 << 0
ACE_LOW = 1 << 1
ACE_HIGH = 1 << 2


class GameType(str, Enum):
    STANDARD = "standard"
    CONTINUOUS_SHOE = "continuous-shoe"
    CHAOS = "chaos"

    @property
    def display_name(self) -> str:
        return {
            GameType.STANDARD: "Standard",
            GameType.CONTINUOUS_SHOE: "Continuous Shoe",
            GameType.CHAOS: "Chaos",
        }[self]

    @classmethod
    def from_string(cls, value: str) -> "GameType":
        normalized = value.strip().lower().replace(" ", "-")
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigError(f"unknown game type: {value}") from None


class Action(str, Enum):
    PICK_ACE_LOW = "pick-ace-low"
    PICK_ACE_HIGH = "pick-ace-high"
    BET = "bet"
    BET_THE_GAP = "bet-the-gap"
    PASS = "pass"

    @property
    def display_name(self) -> str:
        return {
            Action.PICK_ACE_LOW: "Pick Low Ace",
            Action.PICK_ACE_HIGH: "Pick High Ace",
            Action.BET: "Bet",
            Action.BET_THE_GAP: "Bet the Gap",
            Action.PASS: "Pass",
        }[self]

    @classmethod
    def from_string(cls, value: str) -> "Action":
        try:
            return cls(value)
        except ValueError:
            raise IllegalActionError(f"unknown action: {value}") from None

    def to_dict(self) -> dict:
        return {"id": self.value, "name": self.display_name}


@dataclass
class AceyDeuceyOptions:
    ante: int = 25
    allow_pass: bool = False
    game_type: GameType = GameType.STANDARD

    def validate(self) -> None:
        if self.ante <= 0:
            raise ConfigError("ante must be greater than zero")
        if not isinstance(self.game_type, GameType):
            self.game_type = GameType.from_string(str(self.game_type))


def name_from_options(options: AceyDeuceyOptions) -> str:
    extras = []
    if options.game_type != GameType.STANDARD:
        extras.append(options.game_type.display_name)
    if options.allow_pass:
        extras.append("With Passing")

    if extras:
        return f"Acey Deucey ({' and '.join(extras)})"
    return "Acey Deucey"


@dataclass
class Participant:
    player_id: int
    balance: int = 0

    def to_dict(self) -> dict:
        return {"playerId": self.player_id, "balance": self.balance}


# Single games ----------------------------------------------------------------


@dataclass
class Bet:
    amount: int = 0
    # a winning half-pot bet takes half the pot instead of the amount
    half_pot: bool = False

    def to_dict(self) -> dict:
        return {"amount": self.amount, "halfPot": self.half_pot}


class SingleGameResult(str, Enum):
    FREE_GAME = "free-game"
    LOST = "lost"
    POST = "post"
    WON = "won"
    PASS = "pass"


@dataclass
class SingleGame:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    first_card: Optional[Card] = None
    middle_card: Optional[Card] = None
    last_card: Optional[Card] = None
    bet: Bet = field(default_factory=Bet)
    adjustment: int = 0
    result: Optional[SingleGameResult] = None

    def first_card_rank(self) -> int:
        """Rank of the first card, honoring an ace the player called low."""
        if self.first_card is None:
            raise RuntimeError("first card is not set")
        if self.first_card.rank == ACE and self.first_card.is_bit_set(ACE_LOW):
            return LOW_ACE
        return self.first_card.rank

    def gap(self) -> int:
        if self.last_card is None:
            raise RuntimeError("last card is not set")
        return abs(self.last_card.rank - self.first_card_rank())

    def is_game_over(self) -> bool:
        return self.middle_card is not None or self.result is not None

    def to_dict(self) -> dict:
        return {
            "uuid": self.id,
            "firstCard": self.first_card.to_dict() if self.first_card else None,
            "middleCard": self.middle_card.to_dict() if self.middle_card else None,
            "lastCard": self.last_card.to_dict() if self.last_card else None,
            "bet": self.bet.to_dict(),
            "adjustment": self.adjustment,
            "result": self.result.value if self.result else None,
        }


# Rounds ----------------------------------------------------------------------


class RoundState(str, Enum):
    START = "start"
    FIRST_CARD_DEALT = "first-card-dealt"
    PENDING_ACE_DECISION = "pending-ace-decision"
    PENDING_BET = "pending-bet"
    BET_PLACED = "bet-placed"
    PASSED = "passed"
    GAME_OVER = "game-over"
    ROUND_OVER = "round-over"
    COMPLETE = "complete"
    WAITING = "waiting"


class Round:
    """One participant's turn: a single game plus any bonus games spawned by pairs."""

    def __init__(
        self,
        player_id: int,
        pot: int,
        scheduler: Scheduler,
        send_log: Callable[..., None],
        half_pot_max: bool = False,
    ) -> None:
        self.player_id = player_id
        self.games: List[SingleGame] = [SingleGame()]
        self.state = RoundState.START
        self.pot = pot
        self.half_pot_max = half_pot_max
        self.active_game_index = 0
        self.scheduler = scheduler
        self.send_log = send_log

    def active_game(self) -> SingleGame:
        if self.state in (RoundState.ROUND_OVER, RoundState.COMPLETE):
            raise TurnError("round is over")
        game = self.games[self.active_game_index]
        if game.is_game_over():
            raise TurnError("game is over")
        return game

    def deal_card(self, card: Card) -> None:
        game = self.active_game()
        if self.state == RoundState.START:
            self.send_log(LogMessage.new([], [card], "Left card dealt"))
            self._deal_first_card(game, card)
        elif self.state == RoundState.FIRST_CARD_DEALT:
            self._deal_last_card(game, card)
        elif self.state == RoundState.BET_PLACED:
            self.send_log(LogMessage.new([], [card], "Middle card dealt"))
            self._deal_middle_card(game, card)
        else:
            raise RuntimeError(f"cannot deal card from state: {self.state.value}")

    def _deal_first_card(self, game: SingleGame, card: Card) -> None:
        game.first_card = card
        if card.rank == ACE:
            card.set_bit(ACE_UNDECIDED)
            self.state = RoundState.PENDING_ACE_DECISION
        else:
            self.state = RoundState.FIRST_CARD_DEALT

    def _deal_last_card(self, game: SingleGame, card: Card) -> None:
        first = game.first_card
        if first is not None and first.rank == ACE and not (first.is_bit_set(ACE_LOW) or first.is_bit_set(ACE_HIGH)):
            raise RuntimeError("ace has not been decided")

        # a pair spawns a bonus game that starts with the paired card
        if card.rank == game.first_card_rank():
            bonus = SingleGame(first_card=card)
            self.games.append(bonus)
            self.state = RoundState.FIRST_CARD_DEALT
            self.send_log(LogMessage.new([], [card], "Bonus game"))
            return

        game.last_card = card
        self.send_log(LogMessage.new([], [card], "Right card dealt"))
        if game.gap() == 1:
            self.finalize_game(game, SingleGameResult.FREE_GAME, 0)
            return

        self.state = RoundState.PENDING_BET

    def _deal_middle_card(self, game: SingleGame, card: Card) -> None:
        game.middle_card = card
        first_rank = game.first_card_rank()
        last_rank = game.last_card.rank

        if card.rank in (first_rank, last_rank):
            self.finalize_game(game, SingleGameResult.POST, -2 * game.bet.amount)
            return

        low, high = sorted((first_rank, last_rank))
        if low < card.rank < high:
            won = self.half_pot() if game.bet.half_pot else game.bet.amount
            self.finalize_game(game, SingleGameResult.WON, won)
            return

        self.finalize_game(game, SingleGameResult.LOST, -game.bet.amount)

    def finalize_game(self, game: SingleGame, result: SingleGameResult, adjustment: int) -> None:
        game.adjustment = adjustment
        game.result = result
        self.pot -= adjustment

        if result == SingleGameResult.FREE_GAME:
            self.send_log(simple_log_message(self.player_id, "{} received a free game"))
        elif result == SingleGameResult.POST:
            self.send_log(simple_log_message(self.player_id, "{} posted and lost ${%d}", -adjustment))
        elif result == SingleGameResult.WON:
            self.send_log(simple_log_message(self.player_id, "{} won ${%d}", adjustment))
        elif result == SingleGameResult.LOST:
            self.send_log(simple_log_message(self.player_id, "{} lost ${%d}", -adjustment))

        if self.active_game_index + 1 == len(self.games) or self.pot <= 0:
            self.set_next_state(RoundState.ROUND_OVER, GAME_OVER_DELAY)
        else:
            self.set_next_state(RoundState.GAME_OVER, GAME_OVER_DELAY)

    def next_game(self) -> None:
        if self.state != RoundState.GAME_OVER:
            raise RuntimeError(f"invalid state to move to next game: {self.state.value}")

        self.active_game_index += 1
        first = self.games[self.active_game_index].first_card
        if first.rank == ACE:
            first.unset_all_bits()
            first.set_bit(ACE_UNDECIDED)
            self.state = RoundState.PENDING_ACE_DECISION
        else:
            self.state = RoundState.FIRST_CARD_DEALT

    # Player decisions ------------------------------------------------
    def set_ace(self, high: bool) -> None:
        game = self.active_game()
        if self.state != RoundState.PENDING_ACE_DECISION:
            raise TurnError(f"cannot choose ace low/high from state: {self.state.value}")

        card = game.first_card
        card.unset_all_bits()
        card.set_bit(ACE_HIGH if high else ACE_LOW)
        self.send_log(simple_log_message(self.player_id, "{} chose ace %s", "high" if high else "low"))
        self.state = RoundState.FIRST_CARD_DEALT

    def set_bet(self, amount: int, half_pot: bool = False) -> None:
        game = self.active_game()
        if self.state != RoundState.PENDING_BET:
            raise TurnError(f"cannot place a bet from state: {self.state.value}")
        if amount <= 0:
            raise IllegalActionError(f"bet must be at least ${{{MIN_BET}}}")
        if amount % MIN_BET:
            raise IllegalActionError(f"bet must be in increments of ${{{MIN_BET}}}")
        max_bet = self.max_bet()
        if amount > max_bet:
            raise IllegalActionError(f"bet of ${{{amount}}} exceeds the max bet of ${{{max_bet}}}")
        if half_pot and not self.can_bet_the_gap():
            raise IllegalActionError("bet the gap for half-pot requires a one-card gap")

        game.bet = Bet(amount=amount, half_pot=half_pot)
        if half_pot:
            self.send_log(simple_log_message(self.player_id, "{} bet ${%d} for half-pot", amount))
        else:
            self.send_log(simple_log_message(self.player_id, "{} bet ${%d}", amount))
        self.state = RoundState.BET_PLACED

    def set_pass(self) -> None:
        self.active_game()
        if self.state != RoundState.PENDING_BET:
            raise TurnError(f"cannot pass from state: {self.state.value}")
        self.send_log(simple_log_message(self.player_id, "{} passed"))
        self.state = RoundState.PASSED

    def pass_game(self) -> None:
        self.finalize_game(self.active_game(), SingleGameResult.PASS, 0)

    # Queries ---------------------------------------------------------
    def half_pot(self) -> int:
        half = self.pot // 2
        return half - half % MIN_BET

    def max_bet(self) -> int:
        if self.pot <= 0:
            return 0
        if not self.half_pot_max:
            return self.pot
        half = self.half_pot()
        return half if half >= 2 * MIN_BET else MIN_BET

    def can_bet_the_gap(self) -> bool:
        if self.state != RoundState.PENDING_BET:
            return False
        if self.pot < BET_THE_GAP_AMOUNT * 2:
            return False
        return self.games[self.active_game_index].gap() == 2

    def cards_in_play(self) -> List[Card]:
        """Cards on the table in games that are still being played."""
        if self.state in (RoundState.ROUND_OVER, RoundState.COMPLETE):
            return []
        cards = []
        for game in self.games[self.active_game_index:]:
            if game.is_game_over():
                continue
            cards.extend(card for card in (game.first_card, game.last_card) if card is not None)
        return cards

    def participant_adjustment(self) -> int:
        return sum(game.adjustment for game in self.games)

    def set_next_state(self, state: RoundState, delay: float) -> None:
        if self.scheduler.is_pending():
            raise RuntimeError("cannot set a pending round state while one is already present")
        self.state = RoundState.WAITING
        self.scheduler.schedule(delay, lambda: self._enter_state(state), state.value)

    def _enter_state(self, state: RoundState) -> None:
        LOGGER.debug("Acey Deucey round state %s", state.value)
        self.state = state

    def to_dict(self) -> dict:
        return {
            "playerId": self.player_id,
            "games": [game.to_dict() for game in self.games],
            "state": self.state.value,
            "pot": self.pot,
            "activeGameIndex": self.active_game_index,
        }


# Game ------------------------------------------------------------------------


class Game(Playable, Tickable):
    """Acey Deucey: each player in turn bets that the middle card lands between two."""

    def __init__(
        self,
        player_ids: Sequence[int],
        options: Optional[AceyDeuceyOptions] = None,
        seed: int = 0,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__()
        options = options or AceyDeuceyOptions()
        options.validate()
        if len(player_ids) < 2:
            raise ConfigError("game requires at least two players")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.participant_order = [Participant(player_id, -options.ante) for player_id in player_ids]
        self.participants: Dict[int, Participant] = {p.player_id: p for p in self.participant_order}

        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.shuffles = 0
        self.scheduler = Scheduler(clock)

        self.turn_index = 0
        self.pot = len(player_ids) * options.ante
        self.rounds: List[Round] = []

        self.send_log(simple_log_message(0, "New game of %s started with a pot of ${%d}", self.name(), self.pot))
        self.new_round()

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return name_from_options(self.options)

    def key(self) -> str:
        return "acey-deucey"

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        if player_id not in self.participants:
            raise TurnError("player not found")

        action = Action.from_string(message.action)
        if action not in self.actions_for_participant(player_id):
            raise IllegalActionError(f"you cannot perform the action: {action.display_name}")

        current = self.current_round()
        if action == Action.PICK_ACE_LOW:
            current.set_ace(high=False)
        elif action == Action.PICK_ACE_HIGH:
            current.set_ace(high=True)
        elif action == Action.PASS:
            current.set_pass()
        elif action == Action.BET_THE_GAP:
            current.set_bet(BET_THE_GAP_AMOUNT, half_pot=True)
        else:
            current.set_bet(message.get_int("amount") or 0)
        return ok_response(), True

    def get_player_state(self, player_id: int) -> Response:
        current = self.current_round()
        actions = self.actions_for_participant(player_id)
        data = {
            "actions": [action.to_dict() for action in actions],
            "maxBet": current.max_bet() if Action.BET in actions else 0,
            "gameState": self.get_game_state(),
        }
        return Response(key="game", value=self.key(), data=data)

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if self.current_round().state != RoundState.COMPLETE:
            return None, False
        adjustments = {p.player_id: p.balance for p in self.participant_order}
        return GameOverDetails(balance_adjustments=adjustments, log=[r.to_dict() for r in self.rounds]), True

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        current = self.current_round()
        if current.state == RoundState.COMPLETE:
            return False
        if self.scheduler.is_pending():
            return self.scheduler.tick()

        if current.state in (RoundState.START, RoundState.FIRST_CARD_DEALT, RoundState.BET_PLACED):
            self.deal_card(current)
        elif current.state == RoundState.PASSED:
            current.pass_game()
        elif current.state == RoundState.GAME_OVER:
            current.next_game()
        elif current.state == RoundState.ROUND_OVER:
            self.end_round()
        else:
            return False
        return True

    # Turns -----------------------------------------------------------
    def current_round(self) -> Round:
        return self.rounds[-1]

    def get_current_turn(self) -> Participant:
        return self.participant_order[self.turn_index]

    def next_turn(self) -> None:
        self.turn_index = (self.turn_index + 1) % len(self.participant_order)

    def is_game_over(self) -> bool:
        return self.pot <= 0

    def new_round(self) -> None:
        """Start the current player's round; call only after the turn has advanced."""
        if self.options.game_type in (GameType.CONTINUOUS_SHOE, GameType.CHAOS):
            self._reshuffle()

        current = Round(self.get_current_turn().player_id, self.pot, self.scheduler, self.send_log)
        self.rounds.append(current)
        # the first orbit is limited to half-pot bets
        current.half_pot_max = self.options.game_type != GameType.CHAOS and len(self.rounds) <= len(
            self.participant_order
        )

    def end_round(self) -> None:
        current = self.current_round()
        self.get_current_turn().balance += current.participant_adjustment()
        self.pot = current.pot
        if self.pot > 0:
            self.next_turn()
            self.new_round()
            return

        self.send_log(simple_log_message(0, "The pot is empty, the game is over"))
        current.set_next_state(RoundState.COMPLETE, COMPLETE_DELAY)

    def actions_for_participant(self, player_id: int) -> List[Action]:
        if player_id != self.get_current_turn().player_id:
            return []

        current = self.current_round()
        if current.state == RoundState.PENDING_ACE_DECISION:
            return [Action.PICK_ACE_LOW, Action.PICK_ACE_HIGH]
        if current.state == RoundState.PENDING_BET:
            actions = [Action.PASS] if self.options.allow_pass else []
            actions.append(Action.BET)
            if current.can_bet_the_gap():
                actions.append(Action.BET_THE_GAP)
            return actions
        return []

    # Cards -----------------------------------------------------------
    def deal_card(self, current: Round) -> None:
        card = self._draw_card(current)
        try:
            current.deal_card(card)
        except Exception:
            self.deck.undo_draw(card)
            raise

    def _draw_card(self, current: Round) -> Card:
        if not self.deck.can_draw(1):
            self._reshuffle(current.cards_in_play())
            self.send_log(simple_log_message(0, "The deck was reshuffled"))
        return self.deck.draw()

    def _reshuffle(self, in_play: Sequence[Card] = ()) -> None:
        # cards still on the table are never dealt twice
        self.shuffles += 1
        self.deck.shuffle(self.seed + self.shuffles)
        for card in in_play:
            self.deck.remove_card(card)
        LOGGER.debug("Acey Deucey deck reshuffled (%d cards)", self.deck.cards_left())

    # State -----------------------------------------------------------
    def get_game_state(self) -> dict:
        current = self.current_round()
        return {
            "name": self.name(),
            "pot": self.pot,
            "currentTurn": self.get_current_turn().player_id,
            "participants": [p.to_dict() for p in self.participant_order],
            "round": current.to_dict(),
            "cardsRemaining": self.deck.cards_left(),
            "gameType": self.options.game_type.value,
            "allowPass": self.options.allow_pass,
            "isGameOver": current.state == RoundState.COMPLETE,
        }
