import pytest

from cardroom.deck import Hand
from cardroom.errors import ConfigError, IllegalActionError, TurnError
from cardroom.handanalyzer import HandAnalyzer
from cardroom.texasholdem import Action, DealerState, Game, HoldemOptions, Participant, Variant

from .helpers import FakeClock, create_holdem_game, log_texts, parse_cards, payload, run_until_finished


def advance(game: Game, clock: FakeClock, seconds: float = 1) -> None:
    clock.advance(seconds)
    assert game.tick()


def test_options_are_validated():
    with pytest.raises(ConfigError, match=r"ante must be in increments of \$\{25\}"):
        Game([1, 2], HoldemOptions(ante=30))
    with pytest.raises(ConfigError, match=r"ante must be at most \$\{50\}"):
        Game([1, 2], HoldemOptions(ante=75))
    with pytest.raises(ConfigError, match=r"lower limit must be at least \$\{25\}"):
        Game([1, 2], HoldemOptions(lower_limit=0, upper_limit=0))
    with pytest.raises(ConfigError, match=r"lower limit must be at most \$\{100\}"):
        Game([1, 2], HoldemOptions(lower_limit=125, upper_limit=250))
    with pytest.raises(ConfigError, match=r"upper limit must be \$\{100\}"):
        Game([1, 2], HoldemOptions(lower_limit=50, upper_limit=75))
    with pytest.raises(ConfigError, match="invalid variant: omaha"):
        Game([1, 2], HoldemOptions(variant="omaha"))
    with pytest.raises(ConfigError, match="at least two players"):
        Game([1], HoldemOptions())


def test_name_includes_limits():
    assert Game([1, 2]).name() == "Texas Hold'em (${25}/${50})"
    pineapple = Game([1, 2], HoldemOptions(variant=Variant.PINEAPPLE, lower_limit=50, upper_limit=100))
    assert pineapple.name() == "Pineapple (${50}/${100})"
    assert pineapple.get_player_state(1).value == "texas-hold-em"


@pytest.mark.parametrize("lower", [25, 50, 100])
def test_limits_are_posted_as_blinds(lower):
    clock = FakeClock()
    game = create_holdem_game(options=HoldemOptions(ante=25, lower_limit=lower, upper_limit=lower * 2), clock=clock)
    game.tick()
    advance(game, clock)

    assert game.dealer_state == DealerState.PRE_FLOP_BETTING_ROUND
    assert game.participants[1].net == -25 - lower
    assert game.participants[2].net == -25 - 2 * lower
    assert game.participants[3].net == -25
    assert game.pot() == 75 + 3 * lower
    assert game.get_current_turn().player_id == 3


def test_full_game_with_a_winner():
    clock = FakeClock()
    game = create_holdem_game(options=HoldemOptions(ante=25, lower_limit=50, upper_limit=100), clock=clock)
    assert game.dealer_state == DealerState.START
    assert game.get_current_turn() is None

    assert game.tick()
    assert [len(p.cards) for p in game.participant_order] == [2, 2, 2]
    advance(game, clock)

    game.participants[1].cards.cards = parse_cards("2c,3c")
    game.participants[2].cards.cards = parse_cards("13d,13s")
    game.participants[3].cards.cards = parse_cards("4h,8h")
    game.deck.cards = parse_cards("5h,6h,7h,9s,10s")

    # pre-flop: the seat after the big blind opens
    assert game.actions_for_participant(1) == []
    assert game.actions_for_participant(3) == [(Action.CALL, 100), (Action.RAISE, 200), (Action.FOLD, 0)]
    assert game.bet_range(game.participants[3]) == (200, 425)
    with pytest.raises(TurnError, match="it is not your turn"):
        game.action(1, payload("call"))

    game.action(3, payload("call"))
    assert game.last_action.player_id == 3
    assert game.actions_for_participant(1) == [(Action.CALL, 50), (Action.RAISE, 200), (Action.FOLD, 0)]
    game.action(1, payload("call"))
    assert game.actions_for_participant(2) == [(Action.CHECK, 0), (Action.RAISE, 200), (Action.FOLD, 0)]
    with pytest.raises(IllegalActionError, match="you cannot call right now"):
        game.action(2, payload("call"))
    game.action(2, payload("check"))
    assert game.dealer_state == DealerState.WAITING

    advance(game, clock)
    assert game.dealer_state == DealerState.DEAL_FLOP
    assert game.last_action is None
    assert game.pot() == 375
    assert [p.net for p in game.participant_order] == [-125, -125, -125]
    assert [p.bet for p in game.participant_order] == [0, 0, 0]

    # flop: bets run from the big blind up to the pot
    assert game.tick()
    assert game.dealer_state == DealerState.FLOP_BETTING_ROUND
    assert len(game.community) == 3
    assert game.actions_for_participant(1) == [(Action.CHECK, 0), (Action.BET, 100), (Action.FOLD, 0)]
    game.action(1, payload("check"))
    game.action(2, payload("check"))
    with pytest.raises(IllegalActionError, match="missing amount to bet"):
        game.action(3, payload("bet"))
    with pytest.raises(IllegalActionError, match=r"bet must be at least \$\{100\}"):
        game.action(3, payload("bet", amount=75))
    with pytest.raises(IllegalActionError, match=r"bet must be at most \$\{375\}"):
        game.action(3, payload("bet", amount=400))
    with pytest.raises(IllegalActionError, match=r"bet must be in increments of \$\{25\}"):
        game.action(3, payload("bet", amount=110))
    game.action(3, payload("bet", amount=150))
    assert game.last_action.amount == 150

    assert game.bet_range(game.participants[1]) == (300, 825)
    with pytest.raises(IllegalActionError, match=r"raise must be to at least \$\{300\}"):
        game.action(1, payload("raise", amount=250))
    game.action(1, payload("raise", amount=300))
    with pytest.raises(IllegalActionError, match=r"raise must not exceed total of \$\{1425\}"):
        game.action(2, payload("raise", amount=1500))
    game.action(2, payload("call"))
    game.action(3, payload("call"))

    advance(game, clock)
    assert game.pot() == 1275
    assert [p.net for p in game.participant_order] == [-425, -425, -425]

    assert game.tick()
    assert game.dealer_state == DealerState.TURN_BETTING_ROUND
    assert len(game.community) == 4
    assert game.actions_for_participant(1) == [(Action.CHECK, 0), (Action.BET, 100), (Action.FOLD, 0)]
    for player_id in (1, 2, 3):
        game.action(player_id, payload("check"))

    advance(game, clock)
    assert game.tick()
    assert game.dealer_state == DealerState.FINAL_BETTING_ROUND
    assert len(game.community) == 5
    for player_id in (1, 2, 3):
        game.action(player_id, payload("check"))

    advance(game, clock)
    assert game.dealer_state == DealerState.REVEAL_WINNER
    game.log_bus.drain()
    assert game.tick()

    assert game.participants[3].result == "won"
    assert game.participants[3].winnings == 1275
    assert game.participants[3].net == 850
    assert log_texts(game.log_bus.drain()) == [
        "{} lost ${425} with a High card",
        "{} lost ${425} with a Pair",
        "{} won ${1275} (${850}) with a Straight flush",
    ]
    assert len(game.hand_analyzer._cache) == 3

    assert game.get_end_of_game_details() == (None, False)
    advance(game, clock, 5)
    assert game.dealer_state == DealerState.END
    assert game.tick()
    details, is_over = game.get_end_of_game_details()
    assert is_over
    assert details.balance_adjustments == {1: -425, 2: -425, 3: 850}
    assert details.log["pot"] == 1275
    assert sum(details.balance_adjustments.values()) == 0


def test_short_stack_may_raise_all_in_below_the_minimum():
    clock = FakeClock()
    game = create_holdem_game(clock=clock, stakes={1: 1000, 2: 1000, 3: 75})
    game.tick()
    advance(game, clock)

    # the minimum raise is to ${100}, but player 3 only has ${75}
    assert game.bet_range(game.participants[3]) == (75, 75)
    assert game.actions_for_participant(3) == [(Action.CALL, 50), (Action.RAISE, 75), (Action.FOLD, 0)]
    game.action(3, payload("raise", amount=75))
    assert game.pot_manager.is_all_in(game.participants[3])
    assert game.pot_manager.get_bet() == 75


def test_fold_heads_up_ends_the_game():
    clock = FakeClock()
    game = create_holdem_game(players=2, clock=clock)
    game.tick()
    advance(game, clock)

    # heads up the small blind acts first
    assert game.get_current_turn().player_id == 1
    game.action(1, payload("fold"))
    assert game.dealer_state == DealerState.WAITING
    assert not game.tick()

    advance(game, clock, 2)
    game.log_bus.drain()
    assert game.tick()
    assert game.participants[2].result == "won"
    assert game.participants[1].net == -25
    assert game.participants[2].net == 25
    messages = log_texts(game.log_bus.drain())
    assert messages[0] == "{} folded and lost ${25}"
    assert messages[1].startswith("{} won ${75} (${25}) with a ")


def test_all_in_player_runs_out_the_board():
    clock = FakeClock()
    game = create_holdem_game(players=2, clock=clock, stakes={1: 25, 2: 1000})
    game.tick()
    advance(game, clock)

    assert game.pot_manager.is_all_in(game.participants[1])
    assert game.get_current_turn().player_id == 2
    game.action(2, payload("check"))

    run_until_finished(game, clock)
    assert len(game.community) == 5
    assert sum(p.net for p in game.participant_order) == 0


def test_pineapple_discard_round():
    clock = FakeClock()
    game = create_holdem_game(options=HoldemOptions(variant=Variant.PINEAPPLE), clock=clock)
    game.tick()

    assert game.dealer_state == DealerState.DISCARD_ROUND
    assert [len(p.cards) for p in game.participant_order] == [3, 3, 3]
    assert game.actions_for_participant(1) == [(Action.DISCARD, 0)]
    with pytest.raises(TurnError, match="it is not your turn"):
        game.action(2, payload("discard", card=game.participants[2].cards[0].text))

    held = {card.text for card in game.participants[1].cards}
    missing = next(card.text for card in game.deck.cards if card.text not in held)
    with pytest.raises(IllegalActionError, match="you do not have that card"):
        game.action(1, payload("discard", card=missing))
    with pytest.raises(IllegalActionError, match="missing card"):
        game.action(1, payload("discard"))

    for player_id in (1, 2, 3):
        discarded = game.participants[player_id].cards[1]
        game.action(player_id, payload("discard", card=discarded.text))
        assert not game.participants[player_id].cards.has_card(discarded)
    assert [len(p.cards) for p in game.participant_order] == [2, 2, 2]

    advance(game, clock)
    assert game.dealer_state == DealerState.PRE_FLOP_BETTING_ROUND
    assert game.participants[1].net == -25
    assert game.participants[2].net == -50
    assert game.get_current_turn().player_id == 3
    assert "{} paid the small blind of ${25}" in log_texts(game.log_bus.drain())


def test_lazy_pineapple_plays_all_hole_cards():
    assert Variant.LAZY_PINEAPPLE.hole_cards == 3
    participant = Participant(1, table_stake=100, cards=Hand(parse_cards("14c,14d,14h")))
    result = participant.analyze(parse_cards("2s,5d,9c,11h,13s"), HandAnalyzer(5))
    assert result.name == "Three of a kind"

    low_clubs = Participant(2, table_stake=100, cards=Hand(parse_cards("2c,3c,4c")))
    result = low_clubs.analyze(parse_cards("14c,5c,14s,8s,9s"), HandAnalyzer(5))
    assert result.name == "Straight flush"
    assert result.descriptor == (5,)


def test_player_state_hides_other_hands():
    clock = FakeClock()
    game = create_holdem_game(clock=clock)
    game.tick()
    advance(game, clock)

    state = game.get_player_state(3)
    assert state.key == "game"
    data = state.data
    assert len(data["participant"]["cards"]) == 2
    assert all(p["cards"] is None for p in data["gameState"]["participants"])
    assert [a["id"] for a in data["actions"]] == ["call", "raise", "fold"]
    assert data["actions"][1] == {"id": "raise", "name": "Raise", "amount": 100, "maxAmount": 175}
    assert data["gameState"]["currentTurn"] == 3

    waiting = game.get_player_state(1).data
    assert waiting["actions"] == []
    assert [a["id"] for a in waiting["futureActions"]] == ["fold", "call", "raise"]

    stranger = game.get_player_state(9).data
    assert stranger["participant"] is None
    assert stranger["actions"] == []


def test_unknown_action_and_player():
    game = create_holdem_game()
    with pytest.raises(TurnError, match="player not found"):
        game.action(9, payload("check"))
    with pytest.raises(IllegalActionError, match="unknown action: shuffle"):
        game.action(1, payload("shuffle"))
    with pytest.raises(TurnError, match="not in a betting round"):
        game.action(1, payload("check"))


def test_game_start_is_logged():
    game = create_holdem_game(options=HoldemOptions(ante=25))
    messages = log_texts(game.log_bus.drain())
    assert messages[0] == "started a new game of Texas Hold'em (${25}/${50})"
    assert messages[1:] == ["{} paid the ante of ${25}"] * 3
