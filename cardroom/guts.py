from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple

from .deck import Card, Deck, EndOfDeck
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
from .potmanager import split_amount

LOGGER = logging.getLogger(__name__)

MIN_PLAYERS = 2
MAX_PLAYERS = 10

SHOWDOWN_DELAY = 1.0
NEXT_ROUND_DELAY = 5.0
END_GAME_DELAY = 2.0
DECK_REVEAL_DELAY = 2.0
DECK_RESOLVE_DELAY = 1.0


class Phase(IntEnum):
    DEALING = 0
    DECLARATION = 1
    SHOWDOWN = 2
    ROUND_END = 3
    GAME_OVER = 4

    @property
    def label(self) -> str:
        return {
            Phase.DEALING: "dealing",
            Phase.DECLARATION: "declaration",
            Phase.SHOWDOWN: "showdown",
            Phase.ROUND_END: "roundEnd",
            Phase.GAME_OVER: "gameOver",
        }[self]


@dataclass
class GutsOptions:
    ante: int = 25
    max_owed: int = 1000
    card_count: int = 2
    # a lone player who goes in must beat the deck to take the pot
    bloody_guts: bool = False

    def validate(self) -> None:
        if self.ante <= 0:
            raise ConfigError("ante must be greater than zero")
        if self.max_owed <= 0:
            raise ConfigError("max owed must be greater than zero")

    @property
    def cards_per_hand(self) -> int:
        return self.card_count if self.card_count in (2, 3) else 2


def name_from_options(options: GutsOptions) -> str:
    name = f"{options.cards_per_hand}-Card Guts"
    return f"Bloody {name}" if options.bloody_guts else name


def analyze_hand(cards: Sequence[Card]) -> AnalyzedHand:
    """Two cards rank pair over high card; three cards use the three-card poker scale."""
    return analyze(len(cards), cards)


@dataclass
class Participant:
    player_id: int
    balance: int = 0
    hand: List[Card] = field(default_factory=list)

    def clear_hand(self) -> None:
        self.hand = []


@dataclass
class ShowdownResult:
    players_in: List[Participant] = field(default_factory=list)
    winners: List[Participant] = field(default_factory=list)
    losers: List[Participant] = field(default_factory=list)
    winning_hand: Optional[AnalyzedHand] = None
    pot_won: int = 0
    penalty_paid: int = 0
    next_pot: int = 0
    all_folded: bool = False
    single_winner: bool = False
    deck_won: bool = False

    def to_dict(self) -> dict:
        return {
            "winnerIds": [p.player_id for p in self.winners],
            "loserIds": [p.player_id for p in self.losers],
            "playersInIds": [p.player_id for p in self.players_in],
            "winningHand": self.winning_hand.name if self.winning_hand else None,
            "potWon": self.pot_won,
            "penaltyPaid": self.penalty_paid,
            "nextPot": self.next_pot,
            "allFolded": self.all_folded,
            "deckWon": self.deck_won,
        }


class Game(Playable, Tickable):
    """Guts: every player declares in or out at once, the best hand that
    went in takes the pot and every other player who went in matches it.
    """

    def __init__(
        self,
        player_ids: Sequence[int],
        options: Optional[GutsOptions] = None,
        seed: int = 0,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__()
        options = options or GutsOptions()
        options.validate()
        if not MIN_PLAYERS <= len(player_ids) <= MAX_PLAYERS:
            raise ConfigError(f"expected between {MIN_PLAYERS} and {MAX_PLAYERS} players, got {len(player_ids)}")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.participants = [Participant(player_id) for player_id in player_ids]
        self.id_to_participant: Dict[int, Participant] = {p.player_id: p for p in self.participants}

        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.scheduler = Scheduler(clock)

        self.pot = 0
        self.phase = Phase.DEALING
        self.round_number = 1
        self.pending_decisions: Dict[int, bool] = {}
        self.decisions: Dict[int, bool] = {}
        self.showdown_result: Optional[ShowdownResult] = None
        self.deck_hand: List[Card] = []
        self.deck_cards_revealed = 0
        self.done = False

        messages = []
        for participant in self.participants:
            self.pot += options.ante
            participant.balance -= options.ante
            messages.append(simple_log_message(participant.player_id, "{} paid the ${%d} ante", options.ante))
        messages.append(
            simple_log_message(0, "New game of %s started with a pot of ${%d}", self.name(), self.pot)
        )
        self.send_log(*messages)

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return name_from_options(self.options)

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        if self.phase == Phase.GAME_OVER:
            raise TurnError("game is over")
        if player_id not in self.id_to_participant:
            raise TurnError("player not found")

        if message.action != "decide":
            raise IllegalActionError(f"unknown action: {message.action}")
        go_in = message.get_bool("in")
        if go_in is None:
            raise IllegalActionError("missing 'in' parameter")
        self.submit_decision(player_id, go_in)
        return ok_response(), True

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if not self.done:
            return None, False
        adjustments = {p.player_id: p.balance for p in self.participants}
        log = self.showdown_result.to_dict() if self.showdown_result else None
        return GameOverDetails(balance_adjustments=adjustments, log=log), True

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        if self.done:
            return False
        if self.scheduler.is_pending():
            return self.scheduler.tick()
        if self.phase == Phase.DEALING:
            self.deal()
            return True
        return False

    # Rounds ----------------------------------------------------------
    def deal(self) -> None:
        for participant in self.participants:
            participant.clear_hand()
        self.deck_hand = []
        self.deck_cards_revealed = 0

        for _ in range(self.options.cards_per_hand):
            for participant in self.participants:
                participant.hand.append(self._draw())

        self.pending_decisions = {p.player_id: True for p in self.participants}
        self.decisions = {}
        self.phase = Phase.DECLARATION
        self.send_log(simple_log_message(0, "Round %d: Cards dealt, declare In or Out", self.round_number))
        LOGGER.debug("Guts round %d dealt", self.round_number)

    def _draw(self) -> Card:
        try:
            return self.deck.draw()
        except EndOfDeck as exc:
            raise ResourceError(f"could not deal cards: {exc}") from exc

    def submit_decision(self, player_id: int, go_in: bool) -> None:
        if self.phase != Phase.DECLARATION:
            raise TurnError("not in declaration phase")
        if not self.pending_decisions.get(player_id):
            raise IllegalActionError("player has already decided")

        self.decisions[player_id] = go_in
        del self.pending_decisions[player_id]
        # the choice itself stays hidden until everyone has decided
        self.send_log(simple_log_message(player_id, "{} has decided"))

        if not self.pending_decisions:
            self.scheduler.schedule(SHOWDOWN_DELAY, self.calculate_showdown, "showdown")

    def calculate_showdown(self) -> None:
        self.phase = Phase.SHOWDOWN
        self.send_log(
            *[
                simple_log_message(p.player_id, "{} was %s", "In" if self.decisions.get(p.player_id) else "Out")
                for p in self.participants
            ]
        )

        players_in = [p for p in self.participants if self.decisions.get(p.player_id)]
        result = ShowdownResult(players_in=players_in)
        self.showdown_result = result

        if not players_in:
            result.all_folded = True
            self.send_log(simple_log_message(0, "No one went in! Everyone re-antes."))
            self._schedule_next_round()
            return

        if len(players_in) == 1:
            if self.options.bloody_guts:
                self._start_deck_showdown()
                return
            winner = players_in[0]
            winner.balance += self.pot
            result.winners = [winner]
            result.winning_hand = analyze_hand(winner.hand)
            result.pot_won = self.pot
            result.single_winner = True
            self.send_log(simple_log_message(winner.player_id, "{} wins ${%d} (only one in)", self.pot))
            self._end_game()
            return

        strengths = {p.player_id: analyze_hand(p.hand).strength for p in players_in}
        best = max(strengths.values())
        winners = [p for p in players_in if strengths[p.player_id] == best]
        losers = [p for p in players_in if strengths[p.player_id] != best]

        result.winners = winners
        result.losers = losers
        result.winning_hand = analyze_hand(winners[0].hand)
        result.pot_won = self.pot

        # shares are whole units; the remainder goes one each in seat order
        for winner, amount in zip(winners, split_amount(self.pot, len(winners), unit=1)):
            winner.balance += amount

        penalty = self.calculate_penalty()
        result.penalty_paid = penalty
        for loser in losers:
            loser.balance -= penalty
            result.next_pot += penalty

        if len(winners) == 1:
            self.send_log(
                simple_log_message(winners[0].player_id, "{} wins ${%d} with %s", self.pot, result.winning_hand.name)
            )
        else:
            fmt = " and ".join(["{}"] * len(winners)) + " split the pot of ${%d}"
            self.send_log(LogMessage.new([w.player_id for w in winners], [], fmt, self.pot))
        if losers:
            self.send_log(*[simple_log_message(loser.player_id, "{} pays penalty of ${%d}", penalty) for loser in losers])

        if result.next_pot > 0:
            self.pot = result.next_pot
            self._schedule_next_round()
        else:
            self.pot = 0
            self.send_log(simple_log_message(0, "The game ends"))
            self._end_game()

    def calculate_penalty(self) -> int:
        return min(self.pot, self.options.max_owed)

    def _schedule_next_round(self) -> None:
        self.phase = Phase.ROUND_END
        self.scheduler.schedule(NEXT_ROUND_DELAY, self.next_round, "next round")

    def _end_game(self) -> None:
        self.phase = Phase.GAME_OVER
        self.scheduler.schedule(END_GAME_DELAY, self._mark_done, "end game")

    def _mark_done(self) -> None:
        self.done = True

    def next_round(self) -> None:
        if self.showdown_result is not None and self.showdown_result.all_folded:
            for participant in self.participants:
                participant.balance -= self.options.ante
                self.pot += self.options.ante
            self.send_log(simple_log_message(0, "Everyone re-anted. Pot is now ${%d}", self.pot))

        self.round_number += 1
        self.showdown_result = None
        self.deck = Deck()
        self.deck.shuffle(self.seed + self.round_number)
        self.deal()

    # Bloody Guts -----------------------------------------------------
    def _start_deck_showdown(self) -> None:
        self.deck_hand = [self._draw() for _ in range(self.options.cards_per_hand)]
        self.deck_cards_revealed = 0
        self.send_log(simple_log_message(self.showdown_result.players_in[0].player_id, "{} must beat the deck"))
        self.scheduler.schedule(DECK_REVEAL_DELAY, self._reveal_deck_card, "reveal deck card")

    def _reveal_deck_card(self) -> None:
        card = self.deck_hand[self.deck_cards_revealed]
        self.deck_cards_revealed += 1
        self.send_log(LogMessage.new([], [card], "The deck shows the %s", card))

        if self.deck_cards_revealed < len(self.deck_hand):
            self.scheduler.schedule(DECK_REVEAL_DELAY, self._reveal_deck_card, "reveal deck card")
        else:
            self.scheduler.schedule(DECK_RESOLVE_DELAY, self.resolve_bloody_guts, "resolve bloody guts")

    def resolve_bloody_guts(self) -> None:
        result = self.showdown_result
        if result is None or len(result.players_in) != 1:
            raise RuntimeError("no lone player to resolve against the deck")

        player = result.players_in[0]
        player_hand = analyze_hand(player.hand)
        deck_hand = analyze_hand(self.deck_hand)

        # the deck wins ties
        if player_hand.strength > deck_hand.strength:
            player.balance += self.pot
            result.winners = [player]
            result.winning_hand = player_hand
            result.pot_won = self.pot
            result.single_winner = True
            self.send_log(
                simple_log_message(player.player_id, "{} beats the deck with %s and wins ${%d}", player_hand.name, self.pot)
            )
            self._end_game()
            return

        penalty = self.calculate_penalty()
        player.balance -= penalty
        result.losers = [player]
        result.winning_hand = deck_hand
        result.deck_won = True
        result.penalty_paid = penalty
        result.next_pot = self.pot + penalty
        self.pot = result.next_pot
        self.send_log(
            simple_log_message(player.player_id, "{} loses to the deck's %s and pays ${%d}", deck_hand.name, penalty)
        )
        self._schedule_next_round()

    # State -----------------------------------------------------------
    def _all_decided(self) -> bool:
        return not self.pending_decisions

    def get_game_state(self) -> dict:
        all_decided = self._all_decided()
        participants = []
        for p in self.participants:
            data = {
                "playerId": p.player_id,
                "balance": p.balance,
                "decided": not self.pending_decisions.get(p.player_id, False),
                "cardsInHand": len(p.hand),
                "hand": None,
            }
            if all_decided and self.decisions.get(p.player_id):
                data["hand"] = [card.to_dict() for card in p.hand]
            participants.append(data)

        return {
            "name": self.name(),
            "participants": participants,
            "pot": self.pot,
            "round": self.round_number,
            "phase": self.phase.label,
            "maxOwed": self.options.max_owed,
            "ante": self.options.ante,
            "cardCount": self.options.cards_per_hand,
            "isGameOver": self.phase == Phase.GAME_OVER,
            "decisions": dict(self.decisions) if all_decided and self.decisions else None,
            "showdownResult": self.showdown_result.to_dict() if self.showdown_result else None,
            "deckHand": [card.to_dict() for card in self.deck_hand[: self.deck_cards_revealed]],
        }

    def get_player_state(self, player_id: int) -> Response:
        participant = self.id_to_participant.get(player_id)
        in_declaration = self.phase == Phase.DECLARATION
        pending = self.pending_decisions.get(player_id, False)

        my_decision = None
        if self._all_decided() and player_id in self.decisions:
            my_decision = self.decisions[player_id]

        data = {
            "gameState": self.get_game_state(),
            "balance": participant.balance if participant else 0,
            "hand": [card.to_dict() for card in participant.hand] if participant else [],
            "canDecide": in_declaration and pending,
            "hasDecided": in_declaration and not pending and participant is not None,
            "myDecision": my_decision,
        }
        return Response(key="game", value="guts", data=data)
