"""
Composition-dependent DP solver for Blackjack.

Given a player hand, the dealer up-card and the exact remaining shoe, computes
the EV of every legal action (Stand, Hit, Double, Split, Surrender) and the
EV-maximising action.  Cards are drawn without replacement: every branch of
the recursion carries its own depleted shoe.

Recursion outline:
    Stand   settle the hand against the dealer distribution for the shoe
    Hit     Σ p(rank) · optimal {Stand, Hit} EV of hand+rank on shoe−rank
    Double  2 · Σ p(rank) · Stand EV of hand+rank on shoe−rank
    Split   deal and play each sub-hand in turn on the shoe the previous ones
            left, then settle all of them against the dealer drawing from
            the final shoe.  Decisions maximise the EV of the whole split.

Peek handling: when the dealer peeks (rules.peek_policy) and shows the
matching up-card, play only continues if the hidden card does not complete a
natural.  Every EV is then

    p_bj · early_end + (1 − p_bj) · EV(action | no dealer natural)

where early_end is 0 for a player natural and −1 otherwise, and all
conditional draws come from ``draw_probability(..., hole_excluded)``.

Memoization goes through :class:`MemoCache`; every key ends with the
absolute shoe counts so results never leak between compositions.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from bjsolver.engine.cards import NUM_RANKS, RANK_ACE, RANK_TEN
from bjsolver.engine.errors import IllegalAction, InvalidShoe
from bjsolver.engine.hand import Hand, as_hand
from bjsolver.engine.rules import DEFAULT_RULES, Rules, settle_against_distribution, settle_total
from bjsolver.engine.shoe import Shoe, draw_probability, full_counts, shoe_from_counts
from bjsolver.solvers.dealer import compute_dealer_distribution, dealer_blackjack_probability
from bjsolver.solvers.memo import MemoCache, default_cache

logger = logging.getLogger(__name__)

SURRENDER_EV: float = -0.5
"""Late surrender forfeits half the original bet."""


# ─── Action ───────────────────────────────────────────────────────────────────


class Action(Enum):
    """Player actions."""

    STAND = "STAND"
    HIT = "HIT"
    DOUBLE = "DOUBLE"
    SPLIT = "SPLIT"
    SURRENDER = "SURRENDER"


ACTION_ORDER: tuple[Action, ...] = (
    Action.STAND,
    Action.HIT,
    Action.DOUBLE,
    Action.SPLIT,
    Action.SURRENDER,
)
"""Tie-break order: the first action in this order that reaches the maximum wins."""


# ─── StrategyResult ───────────────────────────────────────────────────────────


@dataclass
class StrategyResult:
    """Solved decision for one (hand, up-card, shoe) situation.

    Attributes:
        best_action:           EV-maximising legal action.
        ev:                    EV of ``best_action`` in units of the original bet.
        ev_per_action:         EV of every legal action.
        insurance_ev:          EV per unit of an insurance side bet (Ace up only).
        dealer_blackjack_prob: P(hidden card completes a dealer natural).
    """

    best_action: Action
    ev: float
    ev_per_action: dict[Action, float] = field(default_factory=dict)
    insurance_ev: float | None = None
    dealer_blackjack_prob: float = 0.0


# ─── Draw helpers ─────────────────────────────────────────────────────────────


def _can_draw(shoe: Shoe, hole_excluded: int | None, cards: int = 1) -> bool:
    """Return True if the shoe can deal ``cards`` player cards and still hold the hidden card."""
    if shoe.total < cards + 1:
        return False
    if hole_excluded is not None:
        return shoe.total - shoe.counts[hole_excluded] >= 1
    return True


def _draws(shoe: Shoe, hole_excluded: int | None) -> Iterator[tuple[int, float]]:
    """Yield ``(rank, probability)`` for every rank the player can draw next."""
    for rank in range(NUM_RANKS):
        if shoe.counts[rank] == 0:
            continue
        p = draw_probability(shoe, rank, hole_excluded)
        if p > 0.0:
            yield rank, p


# ─── Legality ─────────────────────────────────────────────────────────────────


def legal_actions(
    hand: Hand,
    shoe: Shoe,
    rules: Rules = DEFAULT_RULES,
    hole_excluded: int | None = None,
) -> list[Action]:
    """Return the legal actions for ``hand`` in :data:`ACTION_ORDER`.

    * Stand is always legal.
    * Hit needs a non-bust hand below 21 that has not reached Charlie.
    * Double needs an untouched two-card hand (and DAS after a split) whose
      total the double policy admits.  Naturals never double.
    * Split needs an untouched pair within the re-split limit.
    * Surrender needs an untouched two-card hand that did not come from a split.
    """
    actions = [Action.STAND]
    if hand.is_bust or rules.charlie_reached(hand):
        return actions

    if hand.best_total < 21 and _can_draw(shoe, hole_excluded):
        actions.append(Action.HIT)

    if not hand.is_initial_hand:
        return actions

    if (
        not hand.is_blackjack
        and (not hand.from_split or rules.double_after_split)
        and rules.double_allowed_for(hand)
        and _can_draw(shoe, hole_excluded)
    ):
        actions.append(Action.DOUBLE)

    if (
        hand.is_pair
        and hand.split_depth <= rules.resplit_limit
        and _can_draw(shoe, hole_excluded, cards=2)
    ):
        actions.append(Action.SPLIT)

    if rules.surrender_allowed and not hand.from_split:
        actions.append(Action.SURRENDER)

    return actions


# ─── Stand ────────────────────────────────────────────────────────────────────


def _ev_stand(
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of standing on ``hand`` against the dealer distribution for ``shoe``.

    Stand only depends on the hand's best total and natural status, so the
    memo key abstracts the hand down to those two values.
    """
    if hand.is_bust:
        return -1.0
    if rules.charlie_reached(hand):
        return 1.0

    key = ("stand", hand.best_total, hand.is_blackjack, up_card, hole_excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    dist = compute_dealer_distribution(up_card, shoe, rules, memo, hole_excluded)
    return memo.put(key, settle_against_distribution(hand, dist, rules))


# ─── Hit & optimal {Stand, Hit} ───────────────────────────────────────────────


def _ev_hit(
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of taking one card and then playing optimally among {Stand, Hit}.

    A busted branch is worth −1 with no further recursion.
    """
    key = ("hit", hand.key(), up_card, hole_excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    ev = 0.0
    for rank, p in _draws(shoe, hole_excluded):
        new_hand = hand.add(rank)
        if new_hand.is_bust:
            ev_next = -1.0
        else:
            ev_next, _ = _optimal_ev(new_hand, up_card, shoe.remove(rank), hole_excluded, rules, memo)
        ev += p * ev_next

    return memo.put(key, ev)


def _optimal_ev(
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> tuple[float, Action]:
    """Return the optimal ``(ev, action)`` after a Hit, choosing only Stand or Hit.

    Forced stand: bust, 21, Charlie reached, or a shoe that cannot deal.
    Ties go to Stand.
    """
    key = ("opt", hand.key(), up_card, hole_excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    ev_stand = _ev_stand(hand, up_card, shoe, hole_excluded, rules, memo)
    if (
        hand.is_bust
        or hand.best_total >= 21
        or rules.charlie_reached(hand)
        or not _can_draw(shoe, hole_excluded)
    ):
        return memo.put(key, (ev_stand, Action.STAND))

    ev_hit = _ev_hit(hand, up_card, shoe, hole_excluded, rules, memo)
    if ev_hit > ev_stand:
        return memo.put(key, (ev_hit, Action.HIT))
    return memo.put(key, (ev_stand, Action.STAND))


# ─── Double ───────────────────────────────────────────────────────────────────


def _ev_double(
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of doubling: exactly one forced card, then Stand, stake ×2."""
    key = ("double", hand.key(), up_card, hole_excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    ev = 0.0
    for rank, p in _draws(shoe, hole_excluded):
        new_hand = hand.add(rank)
        ev += p * _ev_stand(new_hand, up_card, shoe.remove(rank), hole_excluded, rules, memo)

    return memo.put(key, 2.0 * ev)


# ─── Split ────────────────────────────────────────────────────────────────────
#
# A split is one joint game.  Each sub-hand receives its second card and is
# played out on the shoe the earlier sub-hands left behind; only then does the
# dealer draw, and every sub-hand settles against that same dealer hand.
# The state is (current sub-hand, pending one-card sub-hands, finished
# sub-hands, shoe).  Finished sub-hands are reduced to (status, stake) pairs
# kept sorted, where the status is the final total or one of the two markers
# below.

_BUST_STATUS = 0
_CHARLIE_STATUS = 22


def _finish(
    finished: tuple[tuple[int, int], ...],
    hand: Hand,
    stake: int,
    rules: Rules,
) -> tuple[tuple[int, int], ...]:
    """Add ``hand`` to the finished sub-hands with the given stake."""
    if hand.is_bust:
        status = _BUST_STATUS
    elif rules.charlie_reached(hand):
        status = _CHARLIE_STATUS
    else:
        status = hand.best_total
    return tuple(sorted(finished + ((status, stake),)))


def _settle_split(
    finished: tuple[tuple[int, int], ...],
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """Settle every finished sub-hand against the dealer drawing from ``shoe``."""
    ev = 0.0
    dist = None
    for status, stake in finished:
        if status == _BUST_STATUS:
            ev -= stake
        elif status == _CHARLIE_STATUS:
            ev += stake
        else:
            if dist is None:
                dist = compute_dealer_distribution(up_card, shoe, rules, memo, hole_excluded)
            ev += stake * sum(p * settle_total(status, result) for result, p in dist.items())
    return ev


def _split_next(
    pending: tuple[Hand, ...],
    finished: tuple[tuple[int, int], ...],
    one_card: bool,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    if not pending:
        return _settle_split(finished, up_card, shoe, hole_excluded, rules, memo)
    return _split_deal(
        pending[0], pending[1:], finished, one_card, up_card, shoe, hole_excluded, rules, memo
    )


def _split_deal(
    hand: Hand,
    pending: tuple[Hand, ...],
    finished: tuple[tuple[int, int], ...],
    one_card: bool,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """Deal the second card to the one-card sub-hand ``hand`` and play on.

    With ``one_card`` (split Aces under ``split_aces_one_card``) the sub-hand
    stands on its two cards.  A shoe that cannot deal leaves it standing on
    one card.
    """
    if not _can_draw(shoe, hole_excluded):
        return _split_next(
            pending, _finish(finished, hand, 1, rules), one_card,
            up_card, shoe, hole_excluded, rules, memo,
        )

    key = (
        "split_deal",
        hand.key(),
        tuple(h.key() for h in pending),
        finished,
        one_card,
        up_card,
        hole_excluded,
        shoe.counts,
    )
    cached = memo.get(key)
    if cached is not None:
        return cached

    ev = 0.0
    for rank, p in _draws(shoe, hole_excluded):
        dealt = hand.add(rank)
        rest = shoe.remove(rank)
        if one_card:
            ev += p * _split_next(
                pending, _finish(finished, dealt, 1, rules), one_card,
                up_card, rest, hole_excluded, rules, memo,
            )
        else:
            ev += p * _split_play(
                dealt, pending, finished, up_card, rest, hole_excluded, rules, memo
            )

    return memo.put(key, ev)


def _split_play(
    hand: Hand,
    pending: tuple[Hand, ...],
    finished: tuple[tuple[int, int], ...],
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """Best joint EV over the legal actions of the sub-hand being played.

    Each action is valued by the whole split, so a sub-hand's choice already
    accounts for the cards it takes away from the sub-hands after it and from
    the dealer.  A busted sub-hand can only Stand, which finishes it.
    """
    key = (
        "split_play",
        hand.key(),
        tuple(h.key() for h in pending),
        finished,
        up_card,
        hole_excluded,
        shoe.counts,
    )
    cached = memo.get(key)
    if cached is not None:
        return cached

    best: float | None = None
    for action in legal_actions(hand, shoe, rules, hole_excluded):
        if action is Action.STAND:
            ev = _split_next(
                pending, _finish(finished, hand, 1, rules), False,
                up_card, shoe, hole_excluded, rules, memo,
            )
        elif action is Action.HIT:
            ev = 0.0
            for rank, p in _draws(shoe, hole_excluded):
                ev += p * _split_play(
                    hand.add(rank), pending, finished,
                    up_card, shoe.remove(rank), hole_excluded, rules, memo,
                )
        elif action is Action.DOUBLE:
            ev = 0.0
            for rank, p in _draws(shoe, hole_excluded):
                ev += p * _split_next(
                    pending, _finish(finished, hand.add(rank), 2, rules), False,
                    up_card, shoe.remove(rank), hole_excluded, rules, memo,
                )
        else:
            # Re-split: play the first half now, queue the second ahead of older halves.
            child = hand.split_child()
            ev = _split_deal(
                child, (child,) + pending, finished, False,
                up_card, shoe, hole_excluded, rules, memo,
            )
        if best is None or ev > best:
            best = ev

    return memo.put(key, best)


def _ev_split(
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of splitting a pair, summed over every sub-hand it produces.

    The first sub-hand is dealt and played out before the second is dealt,
    always in that order, so results are reproducible.
    """
    key = ("split", hand.key(), up_card, hole_excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    child = hand.split_child()
    one_card = hand.pair_rank == RANK_ACE and rules.split_aces_one_card
    ev = _split_deal(child, (child,), (), one_card, up_card, shoe, hole_excluded, rules, memo)
    return memo.put(key, ev)


# ─── Action dispatch ──────────────────────────────────────────────────────────


def _action_ev(
    action: Action,
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of ``action``, conditional on the game continuing past any peek."""
    if action is Action.STAND:
        return _ev_stand(hand, up_card, shoe, hole_excluded, rules, memo)
    if action is Action.HIT:
        return _ev_hit(hand, up_card, shoe, hole_excluded, rules, memo)
    if action is Action.DOUBLE:
        return _ev_double(hand, up_card, shoe, hole_excluded, rules, memo)
    if action is Action.SPLIT:
        return _ev_split(hand, up_card, shoe, hole_excluded, rules, memo)
    return SURRENDER_EV


# ─── Peek adjustment ──────────────────────────────────────────────────────────


def _round_ev(
    action: Action,
    hand: Hand,
    up_card: int,
    shoe: Shoe,
    rules: Rules,
    memo: MemoCache,
) -> float:
    """EV of ``action`` for the whole round, folding in a dealer peek."""
    hole_excluded = rules.hole_excluded(up_card)
    if hole_excluded is None:
        return _action_ev(action, hand, up_card, shoe, None, rules, memo)

    p_bj = dealer_blackjack_probability(up_card, shoe)
    early_end = 0.0 if hand.is_blackjack else -1.0
    if p_bj >= 1.0:
        return early_end
    conditional = _action_ev(action, hand, up_card, shoe, hole_excluded, rules, memo)
    return p_bj * early_end + (1.0 - p_bj) * conditional


# ─── Input validation ─────────────────────────────────────────────────────────


def _as_shoe(shoe: Shoe | Sequence[int] | np.ndarray, rules: Rules) -> Shoe:
    counts = shoe.counts if isinstance(shoe, Shoe) else shoe
    return shoe_from_counts(counts, rules.deck_count)


def _check_rank(rank: int, what: str) -> None:
    if not 0 <= rank < NUM_RANKS:
        raise ValueError(f"{what} must be a rank index in [0, {NUM_RANKS - 1}], got {rank}.")


def _check_composition(hand: Hand, up_card: int, shoe: Shoe, rules: Rules) -> None:
    """Raise InvalidShoe if shoe + hand + up-card overflows the deck count."""
    limit = full_counts(rules.deck_count)
    for rank in range(NUM_RANKS):
        seen = shoe.counts[rank] + hand.counts[rank] + (1 if rank == up_card else 0)
        if seen > limit[rank]:
            raise InvalidShoe(
                f"Shoe plus dealt cards hold {seen} of rank {rank}, "
                f"more than a {rules.deck_count}-deck shoe ({limit[rank]})."
            )


def _prepare(
    hand: Hand | Iterable[int],
    up_card: int,
    shoe: Shoe | Sequence[int] | np.ndarray,
    rules: Rules,
    memo: MemoCache | None,
) -> tuple[Hand, Shoe, MemoCache]:
    rules.validate()
    hand = as_hand(hand)
    _check_rank(up_card, "Dealer up-card")
    shoe = _as_shoe(shoe, rules)
    _check_composition(hand, up_card, shoe, rules)
    if memo is None:
        memo = default_cache()
    memo.begin_session((rules, shoe.counts))
    return hand, shoe, memo


# ─── Public API ───────────────────────────────────────────────────────────────


def ev_of(
    hand: Hand | Iterable[int],
    up_card: int,
    shoe: Shoe | Sequence[int] | np.ndarray,
    action: Action,
    rules: Rules = DEFAULT_RULES,
    memo: MemoCache | None = None,
) -> float:
    """Return the EV of taking ``action`` with ``hand`` against ``up_card``.

    Args:
        hand:    Player hand (Hand or iterable of rank indices).
        up_card: Dealer up-card rank index.
        shoe:    Remaining shoe, player cards and up-card already removed.
        action:  Action to evaluate.
        rules:   Table rules.
        memo:    Cache to use; defaults to the process-wide cache.

    Raises:
        IllegalAction: If ``action`` is not legal for the hand.
        InvalidShoe:   If the shoe is malformed or inconsistent with the rules.
    """
    hand, shoe, memo = _prepare(hand, up_card, shoe, rules, memo)
    if action not in legal_actions(hand, shoe, rules, rules.hole_excluded(up_card)):
        raise IllegalAction(f"{action.value} is not legal for hand {hand}.")
    return _round_ev(action, hand, up_card, shoe, rules, memo)


def best_action(
    hand: Hand | Iterable[int],
    up_card: int,
    shoe: Shoe | Sequence[int] | np.ndarray,
    rules: Rules = DEFAULT_RULES,
    memo: MemoCache | None = None,
) -> tuple[Action, float]:
    """Return the EV-maximising legal action and its EV.

    Ties are broken by :data:`ACTION_ORDER`.
    """
    result = solve(hand, up_card, shoe, rules, memo)
    return result.best_action, result.ev


def insurance_ev(up_card: int, shoe: Shoe, rules: Rules = DEFAULT_RULES) -> float | None:
    """EV per unit staked on insurance, or None when the up-card is not an Ace.

    Examples:
        >>> from bjsolver.engine.shoe import build_shoe_from_hands
        >>> round(insurance_ev(RANK_ACE, build_shoe_from_hands(1, (RANK_ACE,))), 6)
        -0.058824
    """
    if up_card != RANK_ACE:
        return None
    p_ten = shoe.probability(RANK_TEN)
    return p_ten * rules.insurance_payout - (1.0 - p_ten)


def solve(
    player_hand: Hand | Iterable[int],
    dealer_up_card: int,
    shoe: Shoe | Sequence[int] | np.ndarray,
    rules: Rules = DEFAULT_RULES,
    memo: MemoCache | None = None,
) -> StrategyResult:
    """Solve one decision exactly for the given shoe composition.

    Args:
        player_hand:    Player hand (Hand or iterable of rank indices).
        dealer_up_card: Dealer up-card rank index.
        shoe:           Remaining shoe (Shoe or 10 counts) with the player's
                        cards and the up-card already removed.
        rules:          Table rules.
        memo:           Cache to use; defaults to the process-wide cache,
                        which is cleared whenever the (rules, shoe) context changes.

    Returns:
        StrategyResult with the best action, its EV and the EV of every legal action.
    """
    t0 = time.perf_counter()
    hand, shoe, memo = _prepare(player_hand, dealer_up_card, shoe, rules, memo)

    ev_per_action: dict[Action, float] = {}
    best: tuple[float, Action] | None = None
    for action in legal_actions(hand, shoe, rules, rules.hole_excluded(dealer_up_card)):
        ev = _round_ev(action, hand, dealer_up_card, shoe, rules, memo)
        ev_per_action[action] = ev
        if best is None or ev > best[0]:
            best = (ev, action)

    ev, action = best
    stats = memo.stats()
    logger.debug(
        "Solved %s vs %d in %.3fs: %s %.6f (cache: %d entries, %d hits)",
        hand,
        dealer_up_card,
        time.perf_counter() - t0,
        action.value,
        ev,
        stats.size,
        stats.hits,
    )
    return StrategyResult(
        best_action=action,
        ev=ev,
        ev_per_action=ev_per_action,
        insurance_ev=insurance_ev(dealer_up_card, shoe, rules),
        dealer_blackjack_prob=dealer_blackjack_probability(dealer_up_card, shoe),
    )
