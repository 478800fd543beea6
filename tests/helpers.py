from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from cardroom.aceydeucey import AceyDeuceyOptions
from cardroom.aceydeucey import Game as AceyDeuceyGame
from cardroom.deck import Card, Deck, cards_from_string
from cardroom.guts import Game as GutsGame
from cardroom.guts import GutsOptions
from cardroom.littlel import Game as LittleLGame
from cardroom.littlel import LittleLOptions
from cardroom.passthepoop import Game as PassThePoopGame
from cardroom.passthepoop import PassThePoopOptions
from cardroom.playable import LogMessage, PayloadIn
from cardroom.sevencard import Game as SevenCardGame
from cardroom.sevencard import SevenCardOptions, Stud, Variant
from cardroom.texasholdem import Game as HoldemGame
from cardroom.texasholdem import HoldemOptions


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def parse_cards(text: str) -> List[Card]:
    cards = cards_from_string(text)
    assert all(card is not None for card in cards)
    return [card for card in cards if card is not None]


def stacked_deck(order: Sequence[Card]) -> List[Card]:
    """``order`` first, then the rest of a fresh deck in canonical order."""
    rest = [card for card in Deck().cards if card not in order]
    return list(order) + rest


def deal_order(hands: Sequence[str]) -> List[Card]:
    """Interleave per-player hands into round-robin deal order."""
    parsed = [parse_cards(hand) for hand in hands]
    order: List[Card] = []
    for idx in range(max(len(hand) for hand in parsed)):
        for hand in parsed:
            if idx < len(hand):
                order.append(hand[idx])
    return order


def payload(action: str, **data: object) -> PayloadIn:
    return PayloadIn(action=action, additional_data=dict(data))


def log_texts(batches: Sequence[Sequence[LogMessage]]) -> List[str]:
    return [message.message for batch in batches for message in batch]


def create_seven_card_game(
    *,
    hands: Sequence[str] = (),
    players: int = 0,
    deck: str = "",
    variant: Optional[Variant] = None,
    ante: int = 25,
    clock: Optional[FakeClock] = None,
    deal: bool = True,
) -> SevenCardGame:
    """Seven-card game for players 1..n with a stacked deck.

    ``hands`` lists each player's cards in the order they are dealt; ``deck``
    gives the exact deal order instead when extra cards break the rotation.
    """
    player_count = players or len(hands) or 3
    game = SevenCardGame(
        list(range(1, player_count + 1)),
        SevenCardOptions(variant=variant or Stud(), ante=ante),
        seed=1,
        clock=clock,
    )
    if deck:
        game.deck.cards = stacked_deck(parse_cards(deck))
    elif hands:
        game.deck.cards = stacked_deck(deal_order(hands))
    if deal:
        assert game.tick()
    return game


def play_out_with_checks(game: SevenCardGame) -> None:
    while not game.is_game_over():
        current = game.get_current_turn()
        assert current is not None
        game.action(current.player_id, payload("check"))


def create_holdem_game(
    *,
    players: int = 3,
    options: Optional[HoldemOptions] = None,
    clock: Optional[FakeClock] = None,
    stakes: Optional[Dict[int, int]] = None,
) -> HoldemGame:
    return HoldemGame(list(range(1, players + 1)), options or HoldemOptions(), seed=1, clock=clock or FakeClock(), stakes=stakes)


def run_until_finished(game, clock: FakeClock, step: float = 5.0, limit: int = 50) -> None:
    """Tick ``game`` until it reports its end of game details."""
    for _ in range(limit):
        if game.get_end_of_game_details()[1]:
            return
        clock.advance(step)
        game.tick()
    raise AssertionError("game did not finish")


def create_guts_game(
    *,
    hands: Sequence[str] = (),
    players: int = 0,
    extra: str = "",
    options: Optional[GutsOptions] = None,
    clock: Optional[FakeClock] = None,
    deal: bool = True,
) -> GutsGame:
    """Guts game for players 1..n; ``extra`` cards follow the dealt hands."""
    player_count = players or len(hands) or 2
    game = GutsGame(list(range(1, player_count + 1)), options or GutsOptions(), seed=1, clock=clock or FakeClock())
    if hands:
        game.deck.cards = stacked_deck(deal_order(hands) + parse_cards(extra))
    if deal:
        game.deal()
    return game


def create_acey_deucey_game(
    *,
    players: int = 3,
    options: Optional[AceyDeuceyOptions] = None,
    clock: Optional[FakeClock] = None,
    deck: str = "",
) -> AceyDeuceyGame:
    """Acey Deucey game for players 1..n; ``deck`` replaces the whole deck."""
    game = AceyDeuceyGame(list(range(1, players + 1)), options or AceyDeuceyOptions(), seed=1, clock=clock or FakeClock())
    if deck:
        game.deck.cards = parse_cards(deck)
    return game


def create_pass_the_poop_game(
    *,
    cards: str = "",
    options: Optional[PassThePoopOptions] = None,
    clock: Optional[FakeClock] = None,
) -> PassThePoopGame:
    """Pass the Poop game for players 1..n holding ``cards`` in seat order."""
    dealt = parse_cards(cards) if cards else []
    game = PassThePoopGame(list(range(1, (len(dealt) or 3) + 1)), options, seed=1, clock=clock or FakeClock())
    for participant, card in zip(game.participants, dealt):
        participant.card = card
    if dealt:
        game.rounds_log[-1]["startingHand"] = [
            {"playerId": p.player_id, "card": p.card.to_dict()} for p in game.participants
        ]
    return game


def create_little_l_game(
    *,
    hands: Sequence[str] = (),
    community: str = "",
    players: int = 0,
    options: Optional[LittleLOptions] = None,
    stakes: Optional[Dict[int, int]] = None,
    clock: Optional[FakeClock] = None,
    deal: bool = True,
) -> LittleLGame:
    """Little L game for players 1..n; ``hands`` and ``community`` are dealt in that order."""
    player_count = players or len(hands) or 3
    game = LittleLGame(
        list(range(1, player_count + 1)), options or LittleLOptions(), seed=1, clock=clock or FakeClock(), stakes=stakes
    )
    if hands:
        game.deck.cards = stacked_deck(deal_order(hands) + parse_cards(community))
    if deal:
        game.deal_cards()
    return game
