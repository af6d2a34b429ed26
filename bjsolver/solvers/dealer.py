"""
Dealer outcome calculator.

Computes the probability distribution over the dealer's final result for a
given up-card and exact shoe composition, drawing without replacement.

Fixed dealer strategy: hit below 17, hit soft 17 when the rules say H17,
stand otherwise.  The hidden card is *not* known: the recursion integrates
over every possible hidden card and every subsequent hit.

Dealer state is abstracted as ``(hard_total, has_ace, first_draw)`` because
the dealer's future play only depends on its total, its softness, and whether
the next card is the hidden card (which can complete a natural).  Together
with the absolute shoe counts this forms the memo key.

Result keys:
    17..21        dealer stands on that total
    "bust"        dealer exceeds 21
    "blackjack"   up-card + hidden card form a natural
A degenerate synthetic shoe that runs out while the dealer must draw leaves
the dealer standing on its current total, keyed by that integer.
"""

from __future__ import annotations

import logging

from bjsolver.engine.cards import NUM_RANKS, RANK_ACE, RANK_TEN, RANK_VALUES
from bjsolver.engine.rules import BLACKJACK, BUST, DEFAULT_RULES, DealerResult, Rules
from bjsolver.engine.shoe import Shoe
from bjsolver.solvers.memo import MemoCache, default_cache

logger = logging.getLogger(__name__)

DEALER_STAND_TOTALS: tuple[int, ...] = (17, 18, 19, 20, 21)
"""Totals the dealer can finish on from a normal shoe."""


# ─── Dealer state helpers ─────────────────────────────────────────────────────


def _best_total(hard: int, has_ace: bool) -> int:
    """Best non-busting total: one Ace promoted to 11 when it fits.

    Examples:
        >>> _best_total(7, True)    # A-6 → soft 17
        17
        >>> _best_total(17, True)   # A-6-10 → hard 17
        17
    """
    if has_ace and hard + 10 <= 21:
        return hard + 10
    return hard


def _dealer_stands(hard: int, has_ace: bool, rules: Rules) -> bool:
    """Return True if the dealer stands on the given (non-bust) hand."""
    total = _best_total(hard, has_ace)
    if total < 17:
        return False
    soft = has_ace and hard + 10 <= 21
    if total == 17 and soft and rules.dealer_hits_soft17:
        return False
    return True


# ─── Recursive distribution ───────────────────────────────────────────────────


def _dealer_play_recursive(
    hard: int,
    has_ace: bool,
    first_draw: bool,
    shoe: Shoe,
    hole_excluded: int | None,
    rules: Rules,
    memo: MemoCache,
) -> dict[DealerResult, float]:
    """Recursively compute the dealer's final result distribution.

    Args:
        hard:          Dealer hard total so far (Aces count 1).
        has_ace:       Whether the dealer holds at least one Ace.
        first_draw:    True while the dealer holds only the up-card, i.e. the
                       next card is the hidden card.
        shoe:          Remaining shoe, hidden card included.
        hole_excluded: Rank the hidden card cannot be (dealer peeked), or None.
                       Only constrains the first draw.
        rules:         Table rules (soft-17 behaviour).
        memo:          Shared memo cache.

    Returns:
        Dict mapping result key to probability; probabilities sum to 1.0.
    """
    excluded = hole_excluded if first_draw else None
    key = ("dealer", hard, has_ace, first_draw, excluded, shoe.counts)
    cached = memo.get(key)
    if cached is not None:
        return cached

    # Terminal: bust
    if hard > 21:
        return memo.put(key, {BUST: 1.0})

    # Terminal: dealer stands (never before the hidden card is dealt)
    if not first_draw and _dealer_stands(hard, has_ace, rules):
        return memo.put(key, {_best_total(hard, has_ace): 1.0})

    drawable = shoe.total - (shoe.counts[excluded] if excluded is not None else 0)
    if drawable <= 0:
        # Exhausted synthetic shoe: dealer is stuck on the current total.
        return memo.put(key, {_best_total(hard, has_ace): 1.0})

    result: dict[DealerResult, float] = {}
    for rank in range(NUM_RANKS):
        count = shoe.counts[rank]
        if count == 0 or rank == excluded:
            continue
        p = count / drawable
        new_hard = hard + RANK_VALUES[rank]
        new_has_ace = has_ace or rank == RANK_ACE

        if first_draw and new_has_ace and new_hard == 11:
            sub_dist: dict[DealerResult, float] = {BLACKJACK: 1.0}
        else:
            sub_dist = _dealer_play_recursive(
                new_hard, new_has_ace, False, shoe.remove(rank), None, rules, memo
            )

        for outcome, prob in sub_dist.items():
            result[outcome] = result.get(outcome, 0.0) + p * prob

    return memo.put(key, result)


def compute_dealer_distribution(
    up_card: int,
    shoe: Shoe,
    rules: Rules,
    memo: MemoCache,
    hole_excluded: int | None = None,
) -> dict[DealerResult, float]:
    """Dealer distribution without touching the cache session.

    Used by the player calculator inside a session it has already opened.
    The returned dict is owned by the cache and must not be mutated.
    """
    return _dealer_play_recursive(
        RANK_VALUES[up_card],
        up_card == RANK_ACE,
        True,
        shoe,
        hole_excluded,
        rules,
        memo,
    )


# ─── Public API ───────────────────────────────────────────────────────────────


def dealer_distribution(
    up_card: int,
    shoe: Shoe,
    rules: Rules = DEFAULT_RULES,
    *,
    hole_excluded: int | None = None,
    memo: MemoCache | None = None,
) -> dict[DealerResult, float]:
    """Compute the dealer's final result distribution for an up-card and shoe.

    Args:
        up_card:       Rank index (0–9) of the dealer's visible card.
        shoe:          Remaining shoe with the up-card already removed.  The
                       hidden card is still inside it.
        rules:         Table rules.
        hole_excluded: If the dealer peeked and has no natural, the rank the
                       hidden card cannot be.  The distribution is then
                       conditional on no dealer natural.
        memo:          Cache to use; defaults to the process-wide cache.

    Returns:
        Dict with keys 17..21, ``"bust"`` and ``"blackjack"`` (zero-filled),
        plus any lower totals a degenerate shoe forces.  Sums to 1.0.
    """
    if memo is None:
        memo = default_cache()
    memo.begin_session((rules, shoe.counts))

    dist = compute_dealer_distribution(up_card, shoe, rules, memo, hole_excluded)
    result: dict[DealerResult, float] = {t: 0.0 for t in DEALER_STAND_TOTALS}
    result[BUST] = 0.0
    result[BLACKJACK] = 0.0
    for outcome, prob in dist.items():
        result[outcome] = result.get(outcome, 0.0) + prob
    logger.debug("Dealer distribution for up-card %d: %s", up_card, result)
    return result


def dealer_blackjack_probability(up_card: int, shoe: Shoe) -> float:
    """Probability that the hidden card completes a dealer natural.

    Examples:
        >>> from bjsolver.engine.shoe import build_shoe_from_hands
        >>> dealer_blackjack_probability(RANK_ACE, build_shoe_from_hands(1, (RANK_ACE,)))
        0.3137254901960784
    """
    if up_card == RANK_ACE:
        return shoe.probability(RANK_TEN)
    if up_card == RANK_TEN:
        return shoe.probability(RANK_ACE)
    return 0.0
