from __future__ import annotations

import hashlib
import logging
import random
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

LOGGER = logging.getLogger(__name__)

JACK = 11
QUEEN = 12
KING = 13
ACE = 14
LOW_ACE = 1


class Suit(str, Enum):
    CLUBS = "clubs"
    DIAMONDS = "diamonds"
    HEARTS = "hearts"
    SPADES = "spades"


SUITS = [Suit.CLUBS, Suit.DIAMONDS, Suit.HEARTS, Suit.SPADES]

_SUIT_GLYPHS = {Suit.CLUBS: "♣", Suit.DIAMONDS: "♢", Suit.HEARTS: "♡", Suit.SPADES: "♠"}
_SUIT_LETTERS = {Suit.CLUBS: "c", Suit.DIAMONDS: "d", Suit.HEARTS: "h", Suit.SPADES: "s"}
_LETTER_SUITS = {letter: suit for suit, letter in _SUIT_LETTERS.items()}
_RANK_GLYPHS = {JACK: "J", QUEEN: "Q", KING: "K", ACE: "A"}

_CARD_RX = re.compile(r"^(!)?([2-9]|1[0-4])([cdhs])$", re.IGNORECASE)


class EndOfDeck(RuntimeError):
    def __init__(self) -> None:
        super().__init__("end of deck reached")


@dataclass(eq=False)
class Card:
    rank: int
    suit: Suit
    is_wild: bool = False
    bit_field: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.suit, Suit):
            raise ValueError(f"Invalid suit: {self.suit}")
        if not 2 <= self.rank <= ACE:
            raise ValueError(f"Invalid rank: {self.rank}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.rank == other.rank and self.suit == other.suit

    def __hash__(self) -> int:
        return hash((self.rank, self.suit))

    def __str__(self) -> str:
        rank = _RANK_GLYPHS.get(self.rank, str(self.rank))
        return f"{rank}{_SUIT_GLYPHS[self.suit]}"

    @property
    def text(self) -> str:
        wild = "!" if self.is_wild else ""
        return f"{wild}{self.rank}{_SUIT_LETTERS[self.suit]}"

    @property
    def ace_low_rank(self) -> int:
        return LOW_ACE if self.rank == ACE else self.rank

    # Bit field -------------------------------------------------------
    def set_bit(self, bit: int) -> None:
        self.bit_field |= bit

    def unset_bit(self, bit: int) -> None:
        self.bit_field &= ~bit

    def is_bit_set(self, bit: int) -> bool:
        return self.bit_field & bit == bit

    def unset_all_bits(self) -> None:
        self.bit_field = 0

    def copy(self) -> "Card":
        return Card(self.rank, self.suit, self.is_wild, self.bit_field)

    def to_dict(self) -> dict:
        return {"rank": self.rank, "suit": self.suit.value, "isWild": self.is_wild}


def card_from_string(text: str) -> Optional[Card]:
    """Parse ``[!]<rank><suit>``; an empty string parses to ``None``."""
    if text == "":
        return None
    match = _CARD_RX.match(text)
    if match is None:
        raise ValueError(f"could not parse card: {text}")
    rank = int(match.group(2))
    return Card(rank, _LETTER_SUITS[match.group(3).lower()], is_wild=match.group(1) == "!")


def cards_from_string(text: str) -> List[Optional[Card]]:
    if text == "":
        return []
    return [card_from_string(part) for part in text.split(",")]


def card_to_string(card: Optional[Card]) -> str:
    if card is None:
        return ""
    return card.text


def cards_to_string(cards: Iterable[Optional[Card]]) -> str:
    return ",".join(card_to_string(card) for card in cards)


def _build_cards() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in range(2, ACE + 1)]


class Deck:
    """An ordered 52-card deck bound to a reproducible generator."""

    def __init__(self) -> None:
        self.cards: List[Card] = _build_cards()
        self.seed = 0
        self._rng = random.Random()

    def shuffle(self, seed: int = 0) -> int:
        if seed < 0:
            raise ValueError("seed must not be negative")
        if seed == 0:
            seed = time.time_ns()
        self.seed = seed
        self._rng = random.Random(seed)

        # always shuffle from a freshly built deck
        if len(self.cards) != 52:
            self.cards = _build_cards()
        self._fisher_yates(self.cards)
        LOGGER.debug("Shuffled deck with seed %d", seed)
        return seed

    def _fisher_yates(self, cards: List[Card]) -> None:
        for j in range(len(cards) - 1, 0, -1):
            i = self._rng.randrange(j + 1)
            cards[i], cards[j] = cards[j], cards[i]

    def shuffle_discards(self, discards: Iterable[Card]) -> None:
        cards = list(discards)
        self._fisher_yates(cards)
        self.cards = cards

    def draw(self) -> Card:
        if not self.cards:
            raise EndOfDeck()
        return self.cards.pop(0)

    def undo_draw(self, card: Card) -> None:
        self.cards.insert(0, card)

    def can_draw(self, want: int) -> bool:
        return len(self.cards) >= want

    def cards_left(self) -> int:
        return len(self.cards)

    def remove_card(self, target: Card) -> bool:
        for idx, card in enumerate(self.cards):
            if card == target:
                del self.cards[idx]
                return True
        return False

    def hash_code(self) -> str:
        digest = hashlib.sha1()
        for card in self.cards:
            digest.update(str(card).encode("utf-8"))
        return digest.hexdigest()


@dataclass
class Hand:
    cards: List[Card] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self):
        return iter(self.cards)

    def __getitem__(self, idx: int) -> Card:
        return self.cards[idx]

    def __str__(self) -> str:
        return cards_to_string(self.cards)

    def add_card(self, card: Card) -> None:
        self.cards.append(card)

    def has_card(self, card: Card) -> bool:
        return card in self.cards

    def discard(self, card: Card, max_count: int = 0) -> int:
        """Remove up to ``max_count`` copies of ``card`` (all when 0)."""
        kept: List[Card] = []
        removed = 0
        for held in self.cards:
            if held == card and (max_count <= 0 or removed < max_count):
                removed += 1
                continue
            kept.append(held)
        self.cards = kept
        return removed
