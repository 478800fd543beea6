import pytest

from cardroom.deck import Hand
from cardroom.errors import ConfigError, IllegalActionError, TurnError
from cardroom.handanalyzer import HandCategory
from cardroom.littlel import Action, Game, LittleLOptions, Participant, Round, TradeIns, name_from_options
from cardroom.playable import PayloadIn

from .helpers import FakeClock, create_little_l_game, log_texts, parse_cards


def trade_all(game: Game, *player_ids: int) -> None:
    for player_id in player_ids or [p.player_id for p in game.participant_order]:
        game.trade_cards(game.participants[player_id], [])
    game.next_round()


def set_cards(game: Game, community: str, **hands: str) -> None:
    game.community = parse_cards(community)
    for key, cards in hands.items():
        game.participants[int(key[1:])].hand = Hand(parse_cards(cards))


def test_name():
    assert name_from_options(LittleLOptions()) == "4-Card Little L (trade: 0, 2)"
    assert name_from_options(LittleLOptions(initial_deal=3, trade_ins=[3, 1, 2, 2])) == "3-Card Little L (trade: 1, 2, 3)"
    assert str(TradeIns([], 4)) == "0"
    assert TradeIns([0, 2], 4).can_trade(2)
    assert not TradeIns([0, 2], 4).can_trade(1)


def test_new_game_errors():
    with pytest.raises(ConfigError, match="ante must be greater than zero"):
        Game([1, 2], LittleLOptions(ante=0))
    with pytest.raises(ConfigError, match="the initial deal must be between 3 and 5 cards"):
        Game([1, 2], LittleLOptions(initial_deal=6))
    with pytest.raises(ConfigError, match="invalid trade-in option: 8"):
        Game([1, 2], LittleLOptions(initial_deal=5, trade_ins=[8]))
    with pytest.raises(ConfigError, match="invalid trade-in option: 4"):
        Game([1, 2], LittleLOptions(initial_deal=3, trade_ins=[4]))
    with pytest.raises(ConfigError, match="at least two participants"):
        Game([1])
    with pytest.raises(ConfigError, match="more than 10 participants"):
        Game(list(range(1, 12)))


def test_deal_cards():
    game = create_little_l_game(hands=["2c,4c,6c,8c", "3c,5c,7c,9c"], community="10c,11c,12c")
    assert str(game.participants[1].hand) == "2c,4c,6c,8c"
    assert str(game.participants[2].hand) == "3c,5c,7c,9c"
    assert [card.text for card in game.community] == ["10c", "11c", "12c"]
    assert game.get_community_cards() == [None, None, None]
    assert game.pot() == 50
    assert [p.net for p in game.participant_order] == [-25, -25]

    with pytest.raises(RuntimeError):
        game.deal_cards()


def test_trade_cards():
    game = create_little_l_game(
        hands=["2c,5c,8c,11c", "3c,6c,9c,12c", "4c,7c,10c,13c"], community="2d,3d,4d"
    )
    p = game.participants

    with pytest.raises(TurnError, match="it is not your turn"):
        game.trade_cards(p[2], parse_cards("3c,6c"))
    game.trade_cards(p[1], parse_cards("2c,5c"))
    assert p[1].traded == 2
    assert str(p[1].hand) == "8c,11c,14c,5d"

    with pytest.raises(IllegalActionError, match="you do not have 2♣ in your hand"):
        game.trade_cards(p[2], parse_cards("2c,5c"))
    with pytest.raises(IllegalActionError, match="invalid trade-in"):
        game.trade_cards(p[2], parse_cards("3c,3c"))
    with pytest.raises(IllegalActionError, match="the valid trade-ins are: 0, 2; you tried to trade 3"):
        game.trade_cards(p[2], parse_cards("3c,6c,9c"))
    game.trade_cards(p[2], [])
    assert p[2].traded == 0

    game.trade_cards(p[3], parse_cards("4c,7c"))
    assert game.is_round_over()
    game.next_round()
    assert game.round == Round.BEFORE_FIRST_TURN
    with pytest.raises(TurnError, match="we are not in the trade-in round"):
        game.trade_cards(p[1], [])


def test_trade_cards_reuses_discards():
    game = create_little_l_game(
        hands=["2c,5c,8c,11c", "3c,6c,9c,12c", "4c,7c,10c,13c"], community="2d,3d,4d"
    )
    p = game.participants
    game.deck.cards = parse_cards("10s,11s")

    game.trade_cards(p[1], parse_cards("2c,5c"))
    assert str(p[1].hand) == "8c,11c,10s,11s"

    # the deck is empty; player 1's discards are shuffled back in
    game.trade_cards(p[2], parse_cards("3c,6c"))
    assert set(p[2].hand) == set(parse_cards("2c,5c,9c,12c"))

    game.trade_cards(p[3], parse_cards("4c,7c"))
    assert set(p[3].hand) == set(parse_cards("3c,6c,10c,13c"))
    assert game.is_round_over()


def test_best_hand():
    participant = Participant(1, 1000, hand=Hand(parse_cards("2c,3d,4h,4s")))

    cards, best = participant.best_hand([None, None, None])
    assert best.category == HandCategory.THREE_CARD_POKER_STRAIGHT
    assert best.descriptor == (4,)
    assert len(cards) == 4

    _, best = participant.best_hand(parse_cards("5d") + [None, None])
    assert best.category == HandCategory.THREE_CARD_POKER_STRAIGHT
    assert best.descriptor == (5,)

    cards, best = participant.best_hand(parse_cards("5d,3c,4c"))
    assert best.category == HandCategory.STRAIGHT_FLUSH
    assert best.descriptor == (4,)
    assert cards[4:] == parse_cards("3c,4c")


def test_betting_rounds():
    game = create_little_l_game(players=3)
    set_cards(game, "2c,5h,4c", p1="14s,13s,12s", p2="3c,8d,10c", p3="9c,9d,9h")
    p = game.participants
    assert game.pot() == 75
    trade_all(game)

    # before the first community card
    assert game.get_community_cards() == [None, None, None]
    with pytest.raises(TurnError, match="it is not your turn"):
        game.participant_checks(p[2])
    with pytest.raises(IllegalActionError, match=r"your bet \(\$\{100\}\) must not exceed the pot limit \(\$\{75\}\)"):
        game.participant_bets(p[1], 100)
    game.participant_checks(p[1])
    with pytest.raises(IllegalActionError, match="you cannot call without an active bet"):
        game.participant_calls(p[2])
    with pytest.raises(IllegalActionError, match=r"your bet must at least match the ante \(\$\{25\}\)"):
        game.participant_bets(p[2], 0)
    game.participant_bets(p[2], 75)
    with pytest.raises(IllegalActionError, match="you cannot check with an active bet"):
        game.participant_checks(p[3])
    with pytest.raises(
        IllegalActionError, match=r"your raise of \$\{50\} must be at least equal to the previous raise of \$\{75\}"
    ):
        game.participant_bets(p[3], 125)
    with pytest.raises(IllegalActionError, match=r"your raise \(\$\{325\}\) must not exceed the pot limit \(\$\{300\}\)"):
        game.participant_bets(p[3], 325)
    game.participant_bets(p[3], 225)
    game.participant_folds(p[1])
    game.participant_calls(p[2])
    with pytest.raises(TurnError, match="round is over"):
        game.participant_calls(p[3])
    game.next_round()

    assert [card.text if card else "" for card in game.get_community_cards()] == ["2c", "", ""]
    assert [p[i].net for i in (1, 2, 3)] == [-25, -250, -250]
    assert game.pot() == 525

    game.participant_bets(p[2], 25)
    game.participant_bets(p[3], 50)
    game.participant_bets(p[2], 100)
    game.participant_calls(p[3])
    game.next_round()

    assert [card.text if card else "" for card in game.get_community_cards()] == ["2c", "5h", ""]
    assert [p[i].net for i in (1, 2, 3)] == [-25, -350, -350]
    assert game.pot() == 725

    game.participant_checks(p[2])
    game.participant_checks(p[3])
    game.next_round()
    assert [card.text for card in game.get_community_cards()] == ["2c", "5h", "4c"]

    game.participant_checks(p[2])
    game.participant_checks(p[3])
    assert not game.is_game_over()
    game.next_round()
    assert game.is_game_over()
    assert game.can_reveal_cards()

    with pytest.raises(TurnError, match="game is over"):
        game.participant_checks(p[2])
    assert [p[i].net for i in (1, 2, 3)] == [-25, 375, -350]
    assert game.winners == {2: 725}
    assert "{} had a Straight flush and won ${375}" in log_texts(game.log_bus.drain())


def test_tie_splits_the_pot():
    game = create_little_l_game(players=3, options=LittleLOptions(ante=75))
    set_cards(game, "14s,5h,5s", p1="5c,6c,6d", p2="5d,6h,6s", p3="2c,4d,8h")
    assert game.pot() == 225
    trade_all(game)

    for _ in range(4):
        for player_id in (1, 2, 3):
            game.participant_checks(game.participants[player_id])
        game.next_round()

    assert game.winners == {1: 125, 2: 100}
    assert [p.net for p in game.participant_order] == [50, 25, -75]


def test_everybody_folds():
    game = create_little_l_game(players=3, options=LittleLOptions(ante=25))
    p = game.participants
    trade_all(game)

    game.participant_folds(p[1])
    game.participant_folds(p[2])
    assert game.is_game_over()
    with pytest.raises(TurnError, match="game is over"):
        game.participant_folds(p[3])
    assert game.pot() == 75
    assert [p[i].net for i in (1, 2, 3)] == [-25, -25, 50]


def test_all_in_side_pots():
    options = LittleLOptions(ante=50)
    game = create_little_l_game(options=options, stakes={1: 50, 2: 100, 3: 125, 4: 200}, players=4)
    set_cards(game, "2c,4c,6c", p1="14c,13c,12c", p2="13d,12d,11d", p3="13h,12h,11h", p4="11s,10s,9s")
    p = game.participants
    assert game.pot() == 200
    trade_all(game)

    game.participant_bets(p[2], 50)
    game.participant_calls(p[3])
    game.participant_calls(p[4])
    game.next_round()
    assert game.pot() == 350

    # an all-in may go under the ante
    game.participant_bets(p[3], 25)
    with pytest.raises(TurnError, match="round is not over"):
        game.next_round()
    game.participant_calls(p[4])
    game.next_round()
    assert game.pot() == 400

    # nobody left to bet against
    assert game.is_round_over()
    game.next_round()
    game.next_round()
    assert game.is_game_over()
    assert len(game.pot_manager.pots) == 3
    assert game.winners == {1: 200, 2: 75, 3: 125}


def test_fold_mid_game():
    game = create_little_l_game(players=5, options=LittleLOptions(ante=100), stakes={i: 10000 for i in range(1, 6)})
    p = game.participants
    trade_all(game)

    game.participant_bets(p[1], 200)
    game.participant_folds(p[2])
    for player_id in (3, 4, 5):
        game.participant_calls(p[player_id])
    game.next_round()
    assert game.pot() == 1300

    for player_id in (1, 3, 4):
        game.participant_checks(p[player_id])
    game.participant_bets(p[5], 1200)
    for player_id in (1, 3, 4):
        game.participant_folds(p[player_id])

    assert game.is_game_over()
    assert list(game.winners) == [5]
    assert [p[i].net for i in range(1, 6)] == [-300, -100, -300, -300, 1000]


def test_bet_increments():
    game = create_little_l_game(players=2)
    p = game.participants
    trade_all(game)

    with pytest.raises(IllegalActionError, match=r"your bet must be in multiples of \$\{25\}"):
        game.participant_bets(p[1], 24)
    game.participant_bets(p[1], 25)
    with pytest.raises(IllegalActionError, match=r"your raise must be in multiples of \$\{25\}"):
        game.participant_bets(p[2], 51)
    game.participant_bets(p[2], 75)
    game.participant_bets(p[1], 150)
    with pytest.raises(IllegalActionError, match="must be at least equal to the previous raise"):
        game.participant_bets(p[2], 200)
    game.participant_bets(p[2], 225)


def test_actions_and_future_actions():
    game = create_little_l_game(players=3)
    assert game.actions_for_participant(1) == [Action.TRADE]
    assert game.future_actions_for_participant(1) == []
    assert game.future_actions_for_participant(2) == [Action.TRADE]
    assert game.future_actions_for_participant(3) == [Action.TRADE]

    trade_all(game)
    assert game.actions_for_participant(1) == [Action.CHECK, Action.BET, Action.FOLD]
    assert game.future_actions_for_participant(2) == [Action.CHECK, Action.FOLD]

    game.participant_bets(game.participants[1], 25)
    assert game.actions_for_participant(2) == [Action.CALL, Action.RAISE, Action.FOLD]
    assert game.future_actions_for_participant(1) == []
    assert game.future_actions_for_participant(2) == []
    assert game.future_actions_for_participant(3) == [Action.CALL, Action.FOLD]
    assert game.get_min_bet() == 50


def test_played_through_actions_and_ticks():
    clock = FakeClock()
    game = create_little_l_game(players=3, clock=clock)
    set_cards(game, "8h,8d,8s", p2="14s,13s,12s,11c", p3="2c,2h,2d,2s")

    with pytest.raises(TurnError, match="participant is not in the game"):
        game.action(9, PayloadIn(action="check"))
    with pytest.raises(IllegalActionError, match="unknown action: discard"):
        game.action(1, PayloadIn(action="discard"))
    for player_id in (1, 2, 3):
        game.action(player_id, PayloadIn(action="trade"))
    assert game.tick()
    assert game.round == Round.BEFORE_FIRST_TURN

    with pytest.raises(IllegalActionError, match="amount must be > 0"):
        game.action(1, PayloadIn(action="bet"))
    game.action(1, PayloadIn(action="fold"))
    for _ in range(4):
        game.action(2, PayloadIn(action="check"))
        game.action(3, PayloadIn(action="check"))
        assert game.tick()
    assert game.is_game_over()

    messages = log_texts(game.log_bus.drain())
    assert "{} traded 0" in messages
    assert "{} folds" in messages
    assert messages[-3:] == [
        "{} had a Royal flush and won ${50}",
        "{} folded and lost ${25}",
        "{} had a Three of a kind and lost ${25}",
    ]

    assert game.get_end_of_game_details() == (None, False)
    assert not game.tick()
    clock.advance(3)
    assert game.tick()
    details, is_over = game.get_end_of_game_details()
    assert is_over
    assert details.balance_adjustments == {1: -25, 2: 50, 3: -25}
    assert details.log["hands"][1]["handRank"] == "Folded"


def test_tick_deals_the_cards():
    game = create_little_l_game(players=2, deal=False)
    assert game.get_current_turn() is None
    with pytest.raises(TurnError, match="cards have not been dealt yet"):
        game.action(1, PayloadIn(action="trade"))
    assert game.tick()
    assert all(len(p.hand) == 4 for p in game.participant_order)
    assert len(game.community) == 3
    assert not game.tick()


def test_player_state():
    game = create_little_l_game(hands=["2c,4c,6c,8c", "3c,5c,7c,9c"], community="10c,11c,12c")
    state = game.get_player_state(1)
    assert state.key == "game"
    assert state.value == "little-l"

    data = state.data
    assert [card["rank"] for card in data["participant"]["hand"]] == [2, 4, 6, 8]
    assert data["actions"] == [{"id": "trade", "name": "Trade"}]
    assert data["futureActions"] == []
    assert data["gameState"]["name"] == "4-Card Little L (trade: 0, 2)"
    assert data["gameState"]["participants"][1]["hand"] is None
    assert data["gameState"]["tradeIns"] == {"0": True, "2": True}
    assert data["gameState"]["action"] == 1
    assert data["gameState"]["round"] == 0
    assert data["pokerState"]["community"] == [None, None, None]
    assert data["pokerState"]["pots"][0]["amount"] == 50

    assert game.get_player_state(7).data["participant"] is None
