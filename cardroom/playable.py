from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .deck import Card

# Engines only describe rules: transport, persistence and scheduling threads
# live with the caller. Everything here is the seam between the two.

LOGGER = logging.getLogger(__name__)

LOG_BUS_CAPACITY = 256

Clock = Callable[[], float]


@dataclass
class PayloadIn:
    action: str
    additional_data: Dict[str, Any] = field(default_factory=dict)
    subject: str = ""
    cards: List[Card] = field(default_factory=list)
    context: str = ""

    def get_int(self, key: str) -> Optional[int]:
        value = self.additional_data.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    def get_bool(self, key: str) -> Optional[bool]:
        value = self.additional_data.get(key)
        return value if isinstance(value, bool) else None

    def get_str(self, key: str) -> Optional[str]:
        value = self.additional_data.get(key)
        return value if isinstance(value, str) else None

    def get_int_list(self, key: str) -> Optional[List[int]]:
        value = self.additional_data.get(key)
        if not isinstance(value, (list, tuple)):
            return None
        ints = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (int, float)):
                return None
            ints.append(int(item))
        return ints


@dataclass
class Response:
    key: str
    value: str
    data: Any = None
    context: str = ""


def ok_response(context: str = "") -> Response:
    return Response(key="status", value="OK", context=context)


@dataclass
class GameOverDetails:
    balance_adjustments: Dict[int, int]
    log: Any = None


@dataclass
class LogMessage:
    """One entry of the player-facing game log.

    ``{}`` in ``message`` is replaced by the transport with the name of the
    matching entry of ``player_ids``; ``${N}`` marks a currency amount.
    """

    uuid: str
    player_ids: List[int]
    cards: List[Card]
    message: str
    time: datetime

    @classmethod
    def new(cls, player_ids: Sequence[int], cards: Sequence[Card], fmt: str, *args: Any) -> "LogMessage":
        return cls(
            uuid=str(uuid.uuid4()),
            player_ids=list(player_ids),
            cards=list(cards),
            message=fmt % args if args else fmt,
            time=datetime.now(timezone.utc),
        )


def simple_log_message(player_id: int, fmt: str, *args: Any) -> LogMessage:
    player_ids = [player_id] if player_id > 0 else []
    return LogMessage.new(player_ids, [], fmt, *args)


class LogBus:
    """Bounded queue of log batches; the oldest batch is dropped on overrun."""

    def __init__(self, capacity: int = LOG_BUS_CAPACITY) -> None:
        self._queue: Deque[List[LogMessage]] = deque(maxlen=capacity)
        self.dropped = 0

    def send(self, messages: Sequence[LogMessage]) -> None:
        if not messages:
            return
        if len(self._queue) == self._queue.maxlen:
            self.dropped += 1
            LOGGER.warning("Log bus full, dropping oldest batch (%d dropped)", self.dropped)
        self._queue.append(list(messages))

    def drain(self) -> List[List[LogMessage]]:
        batches = list(self._queue)
        self._queue.clear()
        return batches

    def __len__(self) -> int:
        return len(self._queue)


@dataclass
class PendingTransition:
    deadline: float
    handler: Callable[[], None]
    name: str = ""


class Scheduler:
    """Holds at most one pending transition, fired by ``tick``."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or time.monotonic
        self.pending: Optional[PendingTransition] = None

    def schedule(self, delay: float, handler: Callable[[], None], name: str = "") -> None:
        self.pending = PendingTransition(self.clock() + delay, handler, name or getattr(handler, "__name__", ""))
        LOGGER.debug("Scheduled %s in %.1fs", self.pending.name, delay)

    def cancel(self) -> None:
        self.pending = None

    def is_pending(self) -> bool:
        return self.pending is not None

    def tick(self) -> bool:
        pending = self.pending
        if pending is None or self.clock() < pending.deadline:
            return False
        # cleared first so the handler may schedule the next transition
        self.pending = None
        LOGGER.debug("Running %s", pending.name)
        pending.handler()
        return True


class Playable(ABC):
    """A game that players can act upon."""

    def __init__(self) -> None:
        self.log_bus = LogBus()

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def action(self, player_id: int, message: PayloadIn) -> Tuple[Optional[Response], bool]:
        """Apply ``message`` for ``player_id``.

        Returns the direct response (if any) and whether observers should
        refresh their state. Invalid actions raise and leave state unchanged.
        """

    @abstractmethod
    def get_player_state(self, player_id: int) -> Response:
        ...

    @abstractmethod
    def get_end_of_game_details(self) -> Tuple[Optional[GameOverDetails], bool]:
        ...

    def log_chan(self) -> LogBus:
        return self.log_bus

    def send_log(self, *messages: LogMessage) -> None:
        self.log_bus.send(messages)


class Tickable(ABC):
    @abstractmethod
    def interval(self) -> float:
        ...

    @abstractmethod
    def tick(self) -> bool:
        ...
