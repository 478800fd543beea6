import logging

from cardroom.deck import Card, Suit
from cardroom.playable import LogBus, LogMessage, PayloadIn, Scheduler, ok_response, simple_log_message

from .helpers import FakeClock


def test_payload_getters():
    message = PayloadIn(
        action="bet",
        additional_data={
            "amount": 50,
            "ratio": 2.0,
            "flag": True,
            "name": "x",
            "cards": [1, 2.0],
            "mixed": [1, "a"],
            "flags": [True],
        },
    )
    assert message.get_int("amount") == 50
    assert message.get_int("ratio") == 2
    assert message.get_int("flag") is None
    assert message.get_int("name") is None
    assert message.get_int("missing") is None
    assert message.get_bool("flag") is True
    assert message.get_bool("amount") is None
    assert message.get_str("name") == "x"
    assert message.get_str("amount") is None
    assert message.get_int_list("cards") == [1, 2]
    assert message.get_int_list("mixed") is None
    assert message.get_int_list("flags") is None
    assert message.get_int_list("amount") is None


def test_log_message_formatting():
    card = Card(14, Suit.SPADES)
    message = LogMessage.new([3, 4], [card], "{} paid {} ${%d}", 50)
    assert message.message == "{} paid {} ${50}"
    assert message.player_ids == [3, 4]
    assert message.cards == [card]
    assert message.time.tzinfo is not None

    untouched = LogMessage.new([], [], "100% of the pot")
    assert untouched.message == "100% of the pot"
    assert untouched.uuid != message.uuid


def test_simple_log_message():
    assert simple_log_message(5, "{} folds").player_ids == [5]
    assert simple_log_message(0, "Round %d", 2).player_ids == []
    assert simple_log_message(0, "Round %d", 2).message == "Round 2"


def test_ok_response():
    response = ok_response("ctx")
    assert (response.key, response.value, response.data, response.context) == ("status", "OK", None, "ctx")


def test_log_bus_drops_oldest_batch(caplog):
    bus = LogBus(capacity=2)
    first, second, third = (simple_log_message(0, text) for text in ("one", "two", "three"))
    bus.send([first])
    bus.send([])
    bus.send([second])
    assert len(bus) == 2
    with caplog.at_level(logging.WARNING, logger="cardroom.playable"):
        bus.send([third])
    assert bus.dropped == 1
    assert "dropping oldest batch" in caplog.text
    assert bus.drain() == [[second], [third]]
    assert bus.drain() == []
    assert len(bus) == 0


def test_scheduler_fires_after_deadline():
    clock = FakeClock()
    scheduler = Scheduler(clock)
    fired = []
    scheduler.schedule(2.0, lambda: fired.append(clock()), name="deal")
    assert scheduler.is_pending()
    assert scheduler.pending.name == "deal"
    assert not scheduler.tick()
    clock.advance(1.5)
    assert not scheduler.tick()
    clock.advance(0.5)
    assert scheduler.tick()
    assert fired == [clock()]
    assert not scheduler.is_pending()
    assert not scheduler.tick()


def test_scheduler_handler_can_reschedule():
    clock = FakeClock()
    scheduler = Scheduler(clock)
    runs = []

    def step():
        runs.append(clock())
        if len(runs) < 2:
            scheduler.schedule(1.0, step)

    scheduler.schedule(0, step)
    assert scheduler.pending.name == "step"
    assert scheduler.tick()
    assert scheduler.is_pending()
    clock.advance(1.0)
    assert scheduler.tick()
    assert not scheduler.is_pending()
    assert len(runs) == 2


def test_scheduler_cancel():
    clock = FakeClock()
    scheduler = Scheduler(clock)
    scheduler.schedule(1.0, lambda: None)
    scheduler.cancel()
    clock.advance(5)
    assert not scheduler.tick()
