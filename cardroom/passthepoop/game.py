from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..deck import KING, Card, Deck
from ..errors import ConfigError, IllegalActionError, MutualDestruction, TurnError
from ..playable import (
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
from .editions import Edition, LoserGroup, Participant, StandardEdition, new_edition

LOGGER = logging.getLogger(__name__)

# a finished round stays on the table this long before the next deal
NEXT_ROUND_DELAY = 2.0
END_GAME_DELAY = 1.0


class GameAction(str, Enum):
    STAY = "stay"
    TRADE = "trade"
    ACCEPT = "accept"
    FLIP_KING = "flip-king"
    GO_TO_DECK = "go-to-deck"
    DRAW_FROM_DECK = "draw-from-deck"
    END_ROUND = "end-round"
    NEXT_ROUND = "next-round"
    END_GAME = "end-game"

    @property
    def display_name(self) -> str:
        return {
            GameAction.STAY: "Stay",
            GameAction.TRADE: "Trade",
            GameAction.ACCEPT: "Accept Trade",
            GameAction.FLIP_KING: "Flip King",
            GameAction.GO_TO_DECK: "Go to Deck",
            GameAction.DRAW_FROM_DECK: "Draw Card from Deck",
            GameAction.END_ROUND: "End Round",
            GameAction.NEXT_ROUND: "Next Round",
            GameAction.END_GAME: "End Game",
        }[self]

    @classmethod
    def from_string(cls, value: str) -> "GameAction":
        try:
            return cls(value)
        except ValueError:
            raise IllegalActionError(f"unknown action: {value}") from None

    def to_dict(self) -> dict:
        return {"id": self.value, "name": self.display_name}


@dataclass
class PassThePoopOptions:
    ante: int = 25
    lives: int = 3
    edition: Union[Edition, str] = field(default_factory=StandardEdition)

    def validate(self) -> None:
        if self.ante <= 0:
            raise ConfigError("ante must be greater than zero")
        if self.lives <= 0:
            raise ConfigError("lives must be greater than zero")
        if isinstance(self.edition, str):
            self.edition = new_edition(self.edition)


@dataclass
class GameActionDetails:
    action: GameAction
    player_id: int
    secondary_player_id: int = 0

    def to_dict(self) -> dict:
        return {
            "action": self.action.to_dict(),
            "playerId": self.player_id,
            "secondaryPlayerId": self.secondary_player_id,
        }


class Game(Playable, Tickable):
    """Pass the Poop: everyone holds one card and the low card loses a life.

    Seats act in ``participants`` order; the last seat is the dealer, who may
    swap their card for one from the deck instead of trading.
    """

    def __init__(
        self,
        player_ids: Sequence[int],
        options: Optional[PassThePoopOptions] = None,
        seed: int = 0,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__()
        options = options or PassThePoopOptions()
        options.validate()
        if len(player_ids) < 2:
            raise ConfigError("game requires at least two players")
        if len(set(player_ids)) != len(player_ids):
            raise ConfigError("player ids must be unique")

        self.options = options
        self.edition: Edition = options.edition
        self.participants = [
            Participant(player_id, lives=options.lives, balance=-options.ante) for player_id in player_ids
        ]
        self.id_to_participant: Dict[int, Participant] = {p.player_id: p for p in self.participants}
        self.pot = options.ante * len(player_ids)

        self.deck = Deck()
        self.seed = self.deck.shuffle(seed)
        self.shuffles = 0
        self.scheduler = Scheduler(clock)

        self.decision_index = 0
        self.pending_trade = False
        self.dealer_will_go_to_deck = False
        self.dealt_cards = False
        self.last_game_action: Optional[GameActionDetails] = None
        # set by end_round, cleared by next_round
        self.loser_groups: Optional[List[LoserGroup]] = None
        self.balance_adjustments: Optional[Dict[int, int]] = None
        self.end_game_ack = False
        self.next_round_start = 0.0
        self.rounds_log: List[dict] = []

        self.deal()
        self.send_log(simple_log_message(0, "New game of Pass the Poop: %s Edition started", self.edition.name()))

    # Turns -----------------------------------------------------------
    def get_current_turn(self) -> Optional[Participant]:
        if self.decision_index < len(self.participants):
            return self.participants[self.decision_index]
        return None

    def is_dealers_turn(self) -> bool:
        return self.decision_index + 1 == len(self.participants)

    def is_round_over(self) -> bool:
        return self.loser_groups is not None

    def is_game_over(self) -> bool:
        return self.balance_adjustments is not None

    def execute_turn(self, player_id: int, action: GameAction) -> None:
        details = GameActionDetails(action, player_id)
        self._execute_turn(player_id, action, details)

        participant = self.id_to_participant[player_id]
        if action == GameAction.GO_TO_DECK:
            self.send_log(simple_log_message(player_id, "{} will go to the deck"))
        elif action == GameAction.TRADE:
            self.send_log(simple_log_message(player_id, "{} trades their card"))
        elif action == GameAction.ACCEPT:
            self.send_log(simple_log_message(player_id, "{} accepted the trade"))
        elif action == GameAction.FLIP_KING:
            self.send_log(LogMessage.new([player_id], [participant.card], "{} revealed a King"))
        elif action == GameAction.DRAW_FROM_DECK:
            self.send_log(LogMessage.new([player_id], [participant.card], "{} pulled a card from the deck"))
        elif action == GameAction.STAY:
            self.send_log(simple_log_message(player_id, "{} will stay"))

        self.last_game_action = details
        if self.rounds_log:
            self.rounds_log[-1]["gameActions"].append(details.to_dict())

    def _execute_turn(self, player_id: int, action: GameAction, details: GameActionDetails) -> None:
        if self.decision_index >= len(self.participants):
            raise TurnError("no more decisions can be made this round")
        participant = self.id_to_participant.get(player_id)
        if participant is None or participant not in self.participants:
            raise TurnError("player not found")
        if participant is not self.get_current_turn():
            raise TurnError("you are not up")

        holds_king = participant.card.rank == KING
        if action == GameAction.STAY:
            if self.pending_trade and holds_king:
                raise IllegalActionError("you have to flip the King")
            if self.pending_trade:
                raise IllegalActionError("there is a pending trade you have to accept")
            if self.dealer_will_go_to_deck:
                raise IllegalActionError("you announced you would draw from the deck")
            self.decision_index += 1

        elif action == GameAction.GO_TO_DECK:
            if not self.is_dealers_turn():
                raise IllegalActionError("only the dealer may go to the deck")
            if self.pending_trade:
                raise IllegalActionError("there is a pending trade you have to accept")
            # the rest of the table is revealed before the draw
            self.dealer_will_go_to_deck = True
            self.flip_all_cards()

        elif action == GameAction.DRAW_FROM_DECK:
            if not self.is_dealers_turn():
                raise IllegalActionError("only the dealer may draw from the deck")
            if not self.dealer_will_go_to_deck:
                raise IllegalActionError("you must first announce your intention to draw from the deck")
            participant.card = self._draw()
            participant.is_flipped = True
            self.dealer_will_go_to_deck = False
            self.decision_index += 1
            self.edition.participant_was_passed(participant, participant.card)

        elif action == GameAction.TRADE:
            if holds_king:
                raise IllegalActionError("you cannot trade a King")
            if self.pending_trade:
                raise IllegalActionError("there is a pending trade you have to accept")
            if self.is_dealers_turn():
                raise IllegalActionError("the dealer can only go to the deck")
            self.pending_trade = True
            self.decision_index += 1
            details.secondary_player_id = self.participants[self.decision_index].player_id

        elif action == GameAction.ACCEPT:
            if not self.pending_trade:
                raise IllegalActionError("there is no card to accept")
            if holds_king:
                raise IllegalActionError("you cannot accept the trade if you have a King")
            self.pending_trade = False
            previous = self.participants[self.decision_index - 1]
            participant.card, previous.card = previous.card, participant.card
            details.secondary_player_id = previous.player_id
            # the receiving seat now makes its own decision
            self.edition.participant_was_passed(previous, previous.card)

        elif action == GameAction.FLIP_KING:
            if not holds_king:
                raise IllegalActionError("you do not have a King")
            if not self.pending_trade:
                raise IllegalActionError("there is no trade to block")
            # the trade is declined and the King holder takes their own turn
            participant.is_flipped = True
            self.pending_trade = False

        else:
            raise IllegalActionError(f"{action.value} is not a turn action")

    def available_actions(self, player_id: int) -> List[GameAction]:
        participant = self.id_to_participant.get(player_id)
        if participant is None:
            return []

        actions: List[GameAction] = []
        if participant is self.get_current_turn():
            holds_king = participant.card.rank == KING
            if self.pending_trade:
                actions = [GameAction.FLIP_KING if holds_king else GameAction.ACCEPT]
            elif self.is_dealers_turn():
                if self.dealer_will_go_to_deck:
                    actions = [GameAction.DRAW_FROM_DECK]
                else:
                    actions = [GameAction.STAY, GameAction.GO_TO_DECK]
            elif holds_king:
                actions = [GameAction.STAY]
            else:
                actions = [GameAction.STAY, GameAction.TRADE]

        if self.is_game_over():
            actions.append(GameAction.END_GAME)
        elif self.is_round_over():
            actions.append(GameAction.NEXT_ROUND)
        elif self.get_current_turn() is None:
            actions.append(GameAction.END_ROUND)
        return actions

    # Rounds ----------------------------------------------------------
    def end_round(self) -> None:
        if self.is_round_over():
            raise TurnError("you cannot end the round multiple times")
        if self.get_current_turn() is not None:
            raise TurnError("not all players have had a turn yet")

        self.flip_all_cards()
        self.next_round_start = self.scheduler.clock() + NEXT_ROUND_DELAY
        try:
            groups = self.edition.end_round(self.participants)
        except MutualDestruction:
            LOGGER.warning("Pass the Poop round must be replayed")
            self.loser_groups = []
            self._log_round_result()
            self.send_log(simple_log_message(0, "Mutual destruction! The round will be replayed"))
            return

        self.loser_groups = groups
        self._log_round_result()
        self.send_log(
            *[
                LogMessage.new([loser.player_id], [loser.card], "{} lost the round (-%d)", loser.lives_lost)
                for group in groups
                for loser in group.round_losers
            ]
        )
        if not self.should_continue():
            self.end_game()

    def should_continue(self) -> bool:
        return sum(1 for p in self.participants if p.lives > 0) >= 2

    def end_game(self) -> None:
        if self.balance_adjustments is not None:
            raise RuntimeError("end_game() already called")

        winners = [p for p in self.id_to_participant.values() if p.lives > 0]
        if len(winners) > 1:
            raise RuntimeError("too many winners found")
        for winner in winners:
            winner.balance += self.pot
            self.send_log(simple_log_message(winner.player_id, "{} won the pot of ${%d}", self.pot))
        self.balance_adjustments = {p.player_id: p.balance for p in self.id_to_participant.values()}

    def eliminate_and_rotate_participants(self) -> None:
        """Drop players without lives and pass the dealer button to the left."""
        count = len(self.participants)
        rotated = [self.participants[idx % count] for idx in range(1, count + 1)]
        self.participants = [p for p in rotated if p.lives > 0]

    def next_round(self) -> None:
        self.eliminate_and_rotate_participants()
        if len(self.participants) < 2:
            raise RuntimeError("not enough players for a new round")

        self.scheduler.cancel()
        self.send_log(simple_log_message(0, "Next round started"))
        self.dealt_cards = False
        self.decision_index = 0
        self.pending_trade = False
        self.dealer_will_go_to_deck = False
        self.loser_groups = None
        self.last_game_action = None
        self.deal()

    def deal(self) -> None:
        if self.dealt_cards:
            raise RuntimeError("already dealt cards this round")

        # one extra card in case the dealer goes to the deck
        if not self.deck.can_draw(len(self.participants) + 1):
            self.shuffles += 1
            self.deck.shuffle(self.seed + self.shuffles)

        for participant in self.id_to_participant.values():
            participant.new_round()
        for participant in self.participants:
            participant.card = self._draw()

        self.dealt_cards = True
        self.rounds_log.append(
            {
                "round": len(self.rounds_log),
                "startingHand": [{"playerId": p.player_id, "card": p.card.to_dict()} for p in self.participants],
                "gameActions": [],
                "loserGroups": None,
            }
        )
        LOGGER.debug("Pass the Poop round %d dealt", len(self.rounds_log))

    def _draw(self) -> Card:
        return self.deck.draw()

    def flip_all_cards(self) -> None:
        for participant in self.participants:
            participant.is_flipped = True

    def _log_round_result(self) -> None:
        self.rounds_log[-1]["loserGroups"] = [group.to_dict() for group in self.loser_groups or []]

    # Playable --------------------------------------------------------
    def name(self) -> str:
        return f"Pass the Poop, {self.edition.name()} Edition"

    def key(self) -> str:
        return "pass-the-poop"

    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        action = GameAction.from_string(message.action)

        if action == GameAction.END_ROUND:
            self.end_round()
        elif action == GameAction.NEXT_ROUND:
            if self.is_game_over():
                raise TurnError("the game is over")
            if not self.is_round_over():
                raise TurnError("the round is not over")
            wait = self.next_round_start - self.scheduler.clock()
            if wait > 0:
                raise TurnError(f"please wait {wait:.1f} s until starting the next round")
            self.next_round()
        elif action == GameAction.END_GAME:
            if not self.is_game_over():
                raise TurnError("the game is not over")
            self.end_game_ack = True
        else:
            self.execute_turn(player_id, action)
        return ok_response(), True

    def get_player_state(self, player_id: int) -> Response:
        participant = self.id_to_participant.get(player_id)
        current = self.get_current_turn()
        data = {
            "participant": participant.to_dict(show_card=True) if participant else None,
            "card": participant.card.to_dict() if participant and participant.card else None,
            "availableActions": [action.to_dict() for action in self.available_actions(player_id)],
            "gameState": {
                "name": self.name(),
                "edition": self.edition.name(),
                "participants": [p.to_dict() for p in self.participants],
                "allParticipants": {pid: p.to_dict() for pid, p in self.id_to_participant.items()},
                "ante": self.options.ante,
                "pot": self.pot,
                "decisionIndex": self.decision_index,
                "currentTurn": current.player_id if current else 0,
                "lastGameAction": self.last_game_action.to_dict() if self.last_game_action else None,
                "loserGroups": [g.to_dict() for g in self.loser_groups] if self.loser_groups is not None else None,
            },
        }
        return Response(key="game", value=self.key(), data=data)

    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        if not self.end_game_ack:
            return None, False
        return GameOverDetails(balance_adjustments=dict(self.balance_adjustments), log=self.game_log()), True

    def game_log(self) -> dict:
        winners = [p.player_id for p in self.id_to_participant.values() if p.lives > 0]
        return {
            "edition": self.edition.name(),
            "pot": self.pot,
            "ante": self.options.ante,
            "lives": self.options.lives,
            "players": list(self.id_to_participant),
            "winner": winners[0] if len(winners) == 1 else 0,
            "rounds": self.rounds_log,
        }

    # Tickable --------------------------------------------------------
    def interval(self) -> float:
        return 1.0

    def tick(self) -> bool:
        if self.end_game_ack:
            return False
        if self.scheduler.is_pending():
            return self.scheduler.tick()

        if self.is_game_over():
            self.scheduler.schedule(END_GAME_DELAY, self._acknowledge_end, "end game")
            return False
        if self.is_round_over():
            delay = max(0.0, self.next_round_start - self.scheduler.clock())
            self.scheduler.schedule(delay, self.next_round, "next round")
            return False
        if self.get_current_turn() is None:
            self.end_round()
            return True
        return False

    def _acknowledge_end(self) -> None:
        self.end_game_ack = True
