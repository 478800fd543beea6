from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .deck import ACE, SUITS, Card, Suit, cards_to_string

# A card as the analyzer sees it: a rank and a suit, either of which may be
# left open (None) when a wild is free to take any value on that axis.
Slot = Tuple[Optional[int], Optional[Suit]]

_BASE = 15


class HandCategory(IntEnum):
    HIGH_CARD = 0
    ONE_PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    THREE_CARD_POKER_STRAIGHT = 6
    THREE_CARD_POKER_THREE_OF_A_KIND = 7
    FULL_HOUSE = 8
    FOUR_OF_A_KIND = 9
    STRAIGHT_FLUSH = 10
    ROYAL_FLUSH = 11

    def __str__(self) -> str:
        return _CATEGORY_NAMES[self]


_CATEGORY_NAMES = {
    HandCategory.HIGH_CARD: "High card",
    HandCategory.ONE_PAIR: "Pair",
    HandCategory.TWO_PAIR: "Two pair",
    HandCategory.THREE_OF_A_KIND: "Three of a kind",
    HandCategory.STRAIGHT: "Straight",
    HandCategory.FLUSH: "Flush",
    HandCategory.THREE_CARD_POKER_STRAIGHT: "Straight",
    HandCategory.THREE_CARD_POKER_THREE_OF_A_KIND: "Three of a kind",
    HandCategory.FULL_HOUSE: "Full house",
    HandCategory.FOUR_OF_A_KIND: "Four of a kind",
    HandCategory.STRAIGHT_FLUSH: "Straight flush",
    HandCategory.ROYAL_FLUSH: "Royal flush",
}


class WildMode(IntEnum):
    RANK_MODE = 0  # keeps its suit, rank is free
    SUIT_MODE = 1  # keeps its rank, suit is free


def calculate_strength(category: HandCategory, descriptor: Sequence[int]) -> int:
    ranks = list(descriptor[:5]) + [0] * (5 - min(len(descriptor), 5))
    strength = int(category) * _BASE**5
    for idx, rank in enumerate(ranks):
        strength += rank * _BASE ** (4 - idx)
    return strength


@dataclass(frozen=True)
class AnalyzedHand:
    category: HandCategory
    descriptor: Tuple[int, ...]
    strength: int

    @property
    def name(self) -> str:
        return str(self.category)


# Straights -----------------------------------------------------------------


def _straight_high(slots: Sequence[Slot], size: int, suit: Optional[Suit] = None) -> int:
    fixed = set()
    free = 0
    for rank, card_suit in slots:
        if suit is not None and card_suit is not None and card_suit != suit:
            continue
        if rank is None:
            free += 1
        else:
            fixed.add(rank)
    if ACE in fixed:
        fixed.add(1)

    for high in range(ACE, size - 1, -1):
        missing = sum(1 for rank in range(high - size + 1, high + 1) if rank not in fixed)
        if missing <= free:
            return high
    return 0


# Flushes -------------------------------------------------------------------


def _best_flush(slots: Sequence[Slot], size: int) -> Optional[List[int]]:
    best: Optional[List[int]] = None
    for suit in SUITS:
        ranks: List[int] = []
        free = 0
        for rank, card_suit in slots:
            if card_suit is not None and card_suit != suit:
                continue
            if rank is None:
                free += 1
            else:
                ranks.append(rank)
        if len(ranks) + free < size:
            continue

        # open ranks play as ace kickers
        ranks.extend([ACE] * free)

        flush = sorted(ranks, reverse=True)[:size]
        if best is None or flush > best:
            best = flush
    return best


# Pairs, trips and quads ----------------------------------------------------


class _Groups:
    """Rank counts plus the number of cards whose rank is open."""

    def __init__(self, slots: Sequence[Slot]) -> None:
        self.counts: Counter = Counter(rank for rank, _ in slots if rank is not None)
        self.jokers = sum(1 for rank, _ in slots if rank is None)

    def needed(self, rank: int, count: int) -> int:
        return max(0, count - self.counts[rank])

    def kickers(self, used: Dict[int, int], jokers_used: int, count: int) -> List[int]:
        remaining = [ACE] * (self.jokers - jokers_used)
        for rank in sorted(self.counts, reverse=True):
            left = self.counts[rank] - used.get(rank, 0)
            remaining.extend([rank] * max(left, 0))
        return remaining[:count]

    def best_group(self, count: int) -> Optional[Tuple[int, int]]:
        for rank in range(ACE, 1, -1):
            need = self.needed(rank, count)
            if need <= self.jokers:
                return rank, need
        return None

    def best_two_groups(self, first: int, second: int) -> Optional[Tuple[int, int, int]]:
        for high in range(ACE, 1, -1):
            need_high = self.needed(high, first)
            if need_high > self.jokers:
                continue
            for low in range(ACE, 1, -1):
                if low == high:
                    continue
                if first == second and low > high:
                    continue
                need = need_high + self.needed(low, second)
                if need <= self.jokers:
                    return high, low, need
        return None


def _classify(slots: Sequence[Slot], size: int) -> Tuple[HandCategory, List[int]]:
    three_card = size <= 3
    # runs and flushes need at least three cards
    runs = size >= 3

    straight_flush = 0
    if runs:
        straight_flush = max(_straight_high(slots, size, suit) for suit in SUITS)
    if straight_flush == ACE:
        return HandCategory.ROYAL_FLUSH, []
    if straight_flush:
        return HandCategory.STRAIGHT_FLUSH, [straight_flush]

    groups = _Groups(slots)

    if size >= 4:
        quads = groups.best_group(4)
        if quads:
            rank, need = quads
            used = {rank: 4 - need}
            return HandCategory.FOUR_OF_A_KIND, [rank] + groups.kickers(used, need, 1)

    if size >= 5:
        full_house = groups.best_two_groups(3, 2)
        if full_house:
            trips, pair, _ = full_house
            return HandCategory.FULL_HOUSE, [trips, pair]

    if three_card and runs:
        trips = groups.best_group(3)
        if trips:
            return HandCategory.THREE_CARD_POKER_THREE_OF_A_KIND, [trips[0]]
        straight = _straight_high(slots, size)
        if straight:
            return HandCategory.THREE_CARD_POKER_STRAIGHT, [straight]

    flush = _best_flush(slots, size) if runs else None
    if flush:
        return HandCategory.FLUSH, flush

    if not three_card:
        straight = _straight_high(slots, size)
        if straight:
            return HandCategory.STRAIGHT, [straight]

    trips = groups.best_group(3)
    if trips and runs:
        rank, need = trips
        return HandCategory.THREE_OF_A_KIND, [rank] + groups.kickers({rank: 3 - need}, need, size - 3)

    two_pair = groups.best_two_groups(2, 2)
    if two_pair and size >= 4:
        high, low, need = two_pair
        used = {high: 2 - groups.needed(high, 2), low: 2 - groups.needed(low, 2)}
        return HandCategory.TWO_PAIR, [high, low] + groups.kickers(used, need, size - 4)

    pair = groups.best_group(2)
    if pair:
        rank, need = pair
        return HandCategory.ONE_PAIR, [rank] + groups.kickers({rank: 2 - need}, need, size - 2)

    return HandCategory.HIGH_CARD, groups.kickers({}, 0, size)


def _slot(card: Card) -> Slot:
    if card.is_wild:
        return None, None
    return card.rank, card.suit


def _constrained_slot(card: Card, mode: WildMode) -> Slot:
    if mode == WildMode.RANK_MODE:
        return None, card.suit
    return card.rank, None


def _wild_assignments(wilds: Sequence[Card]) -> Iterable[List[Tuple[Card, WildMode]]]:
    for mask in range(1 << len(wilds)):
        yield [
            (wild, WildMode.SUIT_MODE if (mask >> idx) & 1 else WildMode.RANK_MODE)
            for idx, wild in enumerate(wilds)
        ]


def analyze(size: int, cards: Sequence[Card], constrained: bool = False) -> AnalyzedHand:
    """Return the best ``size``-card hand that can be formed from ``cards``."""
    if len(cards) < size:
        raise ValueError(f"expected at least {size} cards, got {len(cards)}")

    if not constrained:
        category, descriptor = _classify([_slot(card) for card in cards], size)
        return AnalyzedHand(category, tuple(descriptor), calculate_strength(category, descriptor))

    naturals = [(card.rank, card.suit) for card in cards if not card.is_wild]
    wilds = [card for card in cards if card.is_wild]
    best: Optional[AnalyzedHand] = None
    for assignment in _wild_assignments(wilds):
        slots = naturals + [_constrained_slot(card, mode) for card, mode in assignment]
        category, descriptor = _classify(slots, size)
        strength = calculate_strength(category, descriptor)
        if best is None or strength > best.strength:
            best = AnalyzedHand(category, tuple(descriptor), strength)
    if best is None:
        raise RuntimeError("no wild assignment was evaluated")
    return best


@dataclass
class HandAnalyzer:
    """Classifies poker hands of up to ``size`` cards, memoizing by the hand's text.

    Fewer cards than ``size`` are classified as a hand of their own length.
    """

    size: int = 5
    constrained: bool = False
    _cache: Dict[str, AnalyzedHand] = field(default_factory=dict, repr=False)

    def analyze(self, cards: Sequence[Card]) -> AnalyzedHand:
        # order must not affect the key
        key = cards_to_string(sorted(cards, key=lambda c: (c.rank, c.suit.value, c.is_wild)))
        result = self._cache.get(key)
        if result is None:
            result = analyze(min(self.size, len(cards)), cards, constrained=self.constrained)
            self._cache[key] = result
        return result

    def get_hand(self, cards: Sequence[Card]) -> HandCategory:
        return self.analyze(cards).category

    def get_strength(self, cards: Sequence[Card]) -> int:
        return self.analyze(cards).strength
