from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .errors import ConfigError, IllegalActionError, TurnError

LOGGER = logging.getLogger(__name__)

# Payouts are always made in multiples of this amount.
PAYOUT_UNIT = 25


class Participant(Protocol):
    player_id: int

    @property
    def balance(self) -> int: ...

    def adjust_balance(self, amount: int) -> None: ...

    def set_amount_in_play(self, amount: int) -> None: ...


@dataclass
class ParticipantInPot:
    participant: Participant
    table_index: int
    amount_in_play: int = 0
    is_all_in: bool = False
    is_folded: bool = False

    @property
    def player_id(self) -> int:
        return self.participant.player_id

    @property
    def balance(self) -> int:
        return self.participant.balance

    def can_act(self) -> bool:
        return not self.is_folded and not self.is_all_in

    def reset_for_round(self) -> None:
        self.amount_in_play = 0
        self.participant.set_amount_in_play(0)

    def commit(self, amount: int) -> None:
        self.amount_in_play += amount
        self.participant.set_amount_in_play(self.amount_in_play)
        self.participant.adjust_balance(-amount)


@dataclass
class Pot:
    amount: int = 0
    # table indexes of the participants who are all-in at exactly this pot's cap
    all_in_participants: Optional[Set[int]] = None

    def to_dict(self, order: Sequence[ParticipantInPot]) -> Dict[str, object]:
        ids = sorted(order[idx].player_id for idx in (self.all_in_participants or ()))
        return {"amount": self.amount, "allInParticipants": ids}


def pots_total(pots: Sequence[Pot]) -> int:
    return sum(pot.amount for pot in pots)


def split_amount(amount: int, count: int, unit: int = PAYOUT_UNIT) -> List[int]:
    """Split ``amount`` into ``count`` shares of whole ``unit``s.

    Leftover units go one each to the first shares; anything smaller than a
    unit goes to the first share.
    """
    units, rest = divmod(amount, unit)
    shares = [(units // count) * unit] * count
    for idx in range(units % count):
        shares[idx] += unit
    if shares:
        shares[0] += rest
    return shares


class PotManager:
    """Tracks betting action, side pots and payouts for a single hand."""

    def __init__(self, ante: int) -> None:
        self.ante = ante
        self.participants: Dict[int, ParticipantInPot] = {}
        self.table_order: List[ParticipantInPot] = []
        self.pots: List[Pot] = [Pot()]
        # action_start_index is where the action started or last changed (a raise)
        self.action_start_index = 0
        # action_at_index is the offset from the start of who is deciding
        self.action_at_index = 0
        self.action_amount = 0
        self.raise_amount = 0
        self.is_game_over = False
        self.in_decision_round = False
        self.needs_pot_calculation = False

    # Seating ---------------------------------------------------------
    def seat_participant(self, participant: Participant) -> None:
        if participant.balance <= 0:
            raise ConfigError("cannot seat participant without a balance")
        pip = ParticipantInPot(participant=participant, table_index=len(self.table_order))
        self.participants[participant.player_id] = pip
        self.table_order.append(pip)
        self._adjust_participant(pip, self.ante)

    def finish_seating_participants(self) -> None:
        self.action_amount = self.ante
        self._calculate_pots()

    def pay_blinds(self, small_blind: int, big_blind: int) -> Tuple[Participant, Participant]:
        """The first seat posts the small blind and the second the big blind.

        Action starts with the third seat (the small blind when heads up) and
        the big blind is the last to decide.
        """
        if len(self.table_order) < 2:
            raise RuntimeError("blinds require at least two participants")
        small, big = self.table_order[0], self.table_order[1]
        self._adjust_participant(small, small_blind)
        self._adjust_participant(big, big_blind)
        self.needs_pot_calculation = True

        self.action_amount = big_blind
        self.raise_amount = big_blind
        self.action_start_index = 2 % len(self.table_order)
        self.action_at_index = 0
        if not self.table_order[self.action_start_index].can_act():
            self._complete_turn(start_offset=0)
        return small.participant, big.participant

    # Queries ---------------------------------------------------------
    @property
    def amount_in_play(self) -> int:
        return sum(pip.amount_in_play for pip in self.table_order)

    def get_pots(self) -> List[Pot]:
        return [Pot(pot.amount, set(pot.all_in_participants) if pot.all_in_participants is not None else None) for pot in self.pots]

    def pots_total(self) -> int:
        return pots_total(self.pots)

    def get_bet(self) -> int:
        return self.action_amount

    def get_raise(self) -> int:
        return self.raise_amount

    def is_round_over(self) -> bool:
        return self.action_at_index >= len(self.table_order)

    def get_in_turn_participant(self) -> Optional[Participant]:
        if self.is_game_over or self.is_round_over():
            return None
        return self.table_order[self._normalized_action_at_index()].participant

    def get_in_turn_participant_in_pot(self) -> Optional[ParticipantInPot]:
        if self.is_game_over or self.is_round_over():
            return None
        return self.table_order[self._normalized_action_at_index()]

    def is_participant_your_turn(self, participant: Participant) -> bool:
        in_turn = self.get_in_turn_participant()
        return in_turn is not None and in_turn.player_id == participant.player_id

    def is_participant_yet_to_act(self, participant: Participant) -> bool:
        pip = self.participants.get(participant.player_id)
        if pip is None or self.is_game_over or self.is_round_over():
            return False
        if pip.is_folded or (pip.is_all_in and not self.in_decision_round):
            return False
        offset = (pip.table_index - self.action_start_index) % len(self.table_order)
        return offset > self.action_at_index

    def get_can_act_participant_count(self) -> int:
        return sum(1 for pip in self.table_order if pip.can_act())

    def get_participant_all_in_amount(self, participant: Participant) -> int:
        pip = self._participant_in_pot(participant)
        return pip.amount_in_play + pip.balance

    def get_pot_limit_max_bet(self) -> int:
        in_turn = self.get_in_turn_participant_in_pot()
        amount_to_call = 0
        if in_turn is not None:
            amount_to_call = self.action_amount - in_turn.amount_in_play
        return self.action_amount + self.pots_total() + self.amount_in_play + amount_to_call

    def amount_to_call(self, participant: Participant) -> int:
        pip = self._participant_in_pot(participant)
        return max(self.action_amount - pip.amount_in_play, 0)

    def get_participant_allowed_actions(self, participant: Participant) -> Tuple[List[str], List[str]]:
        """Actions open to ``participant`` now, and once their turn comes."""
        pip = self._participant_in_pot(participant)
        if self.is_game_over or self.in_decision_round or not pip.can_act():
            return [], []
        if self.is_participant_your_turn(participant):
            return self._betting_actions(pip), []
        if self.is_participant_yet_to_act(participant):
            return [], self._betting_actions(pip)
        return [], []

    def _betting_actions(self, pip: ParticipantInPot) -> List[str]:
        actions = ["fold"]
        if pip.amount_in_play >= self.action_amount:
            actions.append("check")
        else:
            actions.append("call")
        if pip.balance > self.action_amount - pip.amount_in_play:
            actions.append("raise" if self.action_amount > 0 else "bet")
        return actions

    def is_folded(self, participant: Participant) -> bool:
        return self._participant_in_pot(participant).is_folded

    def is_all_in(self, participant: Participant) -> bool:
        return self._participant_in_pot(participant).is_all_in

    # Round actions ---------------------------------------------------
    def participant_folds(self, participant: Participant) -> None:
        pip = self._get_active_participant_in_pot(participant)
        self._check_not_decision_round()
        pip.is_folded = True
        self._complete_turn()

    def participant_checks(self, participant: Participant) -> None:
        pip = self._get_active_participant_in_pot(participant)
        self._check_not_decision_round()
        if pip.amount_in_play != self.action_amount:
            raise IllegalActionError("you cannot check with an active bet")
        self._complete_turn()

    def participant_calls(self, participant: Participant) -> None:
        pip = self._get_active_participant_in_pot(participant)
        self._check_not_decision_round()
        if self.action_amount <= pip.amount_in_play:
            raise IllegalActionError("you cannot call without an active bet")
        self._adjust_participant(pip, self.action_amount)
        self.needs_pot_calculation = True
        self._complete_turn()

    def participant_bets_or_raises(self, participant: Participant, amount: int) -> None:
        """Bet or raise to ``amount`` (the total put in this round).

        Only the relative ordering is enforced here; table limits belong to the game.
        """
        pip = self._get_active_participant_in_pot(participant)
        self._check_not_decision_round()
        if amount <= self.action_amount:
            raise IllegalActionError(
                f"your raise of ${{{amount}}} must be greater than the previous bet of ${{{self.action_amount}}}"
            )
        if amount > pip.amount_in_play + pip.balance:
            raise IllegalActionError("bet exceeds participant's total")
        if amount <= pip.amount_in_play:
            raise IllegalActionError("you already have more in play than the new bet")

        self.action_start_index = pip.table_index
        self.action_at_index = 0
        self.raise_amount = amount - self.action_amount
        self.action_amount = amount
        self._adjust_participant(pip, amount)
        self.needs_pot_calculation = True
        self._complete_turn()

    def advance_decision(self) -> None:
        """Move the action along without the in-turn participant acting."""
        if self.is_game_over:
            raise TurnError("game is over")
        if self.is_round_over():
            raise TurnError("round is over")
        self._complete_turn()

    def start_decision_round(self) -> None:
        """Every non-folded participant gets a turn that carries no betting."""
        self.in_decision_round = True
        self.action_at_index = 0
        self.action_start_index = 0
        while self.action_start_index < len(self.table_order) and self.table_order[self.action_start_index].is_folded:
            self.action_start_index += 1
        if self.action_start_index >= len(self.table_order):
            self.action_start_index = 0
            self.action_at_index = len(self.table_order)

    def next_round(self) -> None:
        if self.is_game_over:
            raise TurnError("game is over")
        if not self.is_round_over():
            raise TurnError("round is not over")
        self.in_decision_round = False
        self._calculate_pots()

    def end_game(self) -> None:
        if self.needs_pot_calculation:
            self._calculate_pots()
        self.is_game_over = True

    # Payout ----------------------------------------------------------
    def pay_winners(self, tiers: Sequence[Sequence[Participant]]) -> Dict[int, int]:
        """Pay each tier of winners, best tier first; returns payouts by player id.

        Every pot is split evenly in units of 25. Leftover units go one at a
        time to the winners in seat order. A winner who is all-in at a pot's cap
        cannot share in any later pot.
        """
        if not self.is_game_over:
            raise TurnError("game is not over")

        remaining = [pot.amount for pot in self.pots]
        payouts: Dict[int, int] = {}

        for tier in tiers:
            group = sorted((self._participant_in_pot(p) for p in tier), key=lambda pip: pip.table_index)
            for pot_index, pot in enumerate(self.pots):
                if remaining[pot_index] == 0:
                    continue
                if not group:
                    break

                eligible: List[ParticipantInPot] = []
                for winner, winnings in zip(group, split_amount(remaining[pot_index], len(group))):
                    winner.participant.adjust_balance(winnings)
                    payouts[winner.player_id] = payouts.get(winner.player_id, 0) + winnings
                    if pot.all_in_participants and winner.table_index in pot.all_in_participants:
                        continue
                    eligible.append(winner)
                group = eligible
                remaining[pot_index] = 0

            if all(amount == 0 for amount in remaining):
                break

        LOGGER.debug("Paid winners %s", payouts)
        return payouts

    # Internals -------------------------------------------------------
    def _adjust_participant(self, pip: ParticipantInPot, total: int) -> None:
        adjustment = total - pip.amount_in_play
        if adjustment >= pip.balance:
            adjustment = pip.balance
            pip.is_all_in = True
        pip.commit(adjustment)

    def _complete_turn(self, start_offset: int = 1) -> None:
        self.action_at_index += start_offset
        while self.action_at_index < len(self.table_order):
            pip = self.table_order[self._normalized_action_at_index()]
            if self.in_decision_round:
                if not pip.is_folded:
                    return
            elif pip.can_act():
                return
            self.action_at_index += 1

    def _calculate_pots(self) -> None:
        if self.action_amount == 0 and self.amount_in_play == 0:
            self._reset()
            return

        all_in_amounts: Dict[int, Set[int]] = {}
        total_action = 0
        for pip in self.table_order:
            total_action += pip.amount_in_play
            if not pip.is_folded and pip.is_all_in and pip.amount_in_play > 0:
                all_in_amounts.setdefault(pip.amount_in_play, set()).add(pip.table_index)

        current = self.pots[-1]
        # someone is all-in on the current pot; chips go to a side pot
        if current.all_in_participants is not None:
            current = Pot()
            self.pots.append(current)

        if not all_in_amounts:
            current.amount += total_action
            self._reset()
            return

        top = max(self.action_amount, max(pip.amount_in_play for pip in self.table_order))
        thresholds = sorted(set(all_in_amounts) | {top})

        previous = 0
        for idx, threshold in enumerate(thresholds):
            contributors = [pip for pip in self.table_order if pip.amount_in_play > previous]
            amount = sum(min(pip.amount_in_play, threshold) - previous for pip in contributors)

            is_last = idx + 1 == len(thresholds)
            if is_last and len(contributors) == 1 and idx > 0:
                # nobody matched this part of the bet; return it
                contributors[0].participant.adjust_balance(amount)
                if self.pots[-1] is current and current.amount == 0 and current.all_in_participants is None:
                    self.pots.pop()
                break

            current.amount += amount
            current.all_in_participants = all_in_amounts.get(threshold)
            if not is_last:
                current = Pot()
                self.pots.append(current)
            previous = threshold

        self._reset()

    def _reset(self) -> None:
        for pip in self.table_order:
            pip.reset_for_round()

        self.action_amount = 0
        self.raise_amount = 0
        self.action_at_index = 0
        self.needs_pot_calculation = False

        # action restarts with the first participant who can act
        self.action_start_index = 0
        while self.action_start_index < len(self.table_order) and not self.table_order[self.action_start_index].can_act():
            self.action_start_index += 1

        if self.get_can_act_participant_count() < 2:
            self.action_start_index = min(self.action_start_index, max(len(self.table_order) - 1, 0))
            self.action_at_index = len(self.table_order)
        LOGGER.debug("Pots now %s", [pot.amount for pot in self.pots])

    def _normalized_action_at_index(self) -> int:
        return (self.action_start_index + self.action_at_index) % len(self.table_order)

    def _participant_in_pot(self, participant: Participant) -> ParticipantInPot:
        pip = self.participants.get(participant.player_id)
        if pip is None:
            raise RuntimeError("participant not found")
        return pip

    def _get_active_participant_in_pot(self, participant: Participant) -> ParticipantInPot:
        pip = self._participant_in_pot(participant)
        if self.is_game_over:
            raise TurnError("game is over")
        if self.is_round_over():
            raise TurnError("round is over")
        if pip.table_index != self._normalized_action_at_index():
            raise TurnError("it is not your turn")
        return pip

    def _check_not_decision_round(self) -> None:
        if self.in_decision_round:
            raise TurnError("betting is not allowed during a decision round")


@dataclass
class _Tier:
    strength: int
    participants: List[Participant] = field(default_factory=list)


class WinManager:
    """Groups participants by hand strength."""

    def __init__(self) -> None:
        self._tiers: Dict[int, _Tier] = {}

    def add_participant(self, participant: Participant, strength: int) -> None:
        tier = self._tiers.setdefault(strength, _Tier(strength))
        tier.participants.append(participant)

    def get_sorted_tiers(self) -> List[List[Participant]]:
        ordered = sorted(self._tiers.values(), key=lambda tier: tier.strength, reverse=True)
        return [list(tier.participants) for tier in ordered]

    def get_winners(self) -> List[Participant]:
        """The participants in the strongest tier."""
        tiers = self.get_sorted_tiers()
        return tiers[0] if tiers else []
