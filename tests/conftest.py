"""
Shared pytest fixtures for the composition-dependent solver tests.

Provides convenience wrappers for building known hands and shoes,
brute-force dealer and split enumerators used to cross-check the memoised
calculators, and a small hand-written strategy chart for the plotting tests.
"""

from __future__ import annotations

import numpy as np
import pytest

from bjsolver.analysis.strategy_chart import ChartSection, StrategyChart, hard_hand, pair_hand
from bjsolver.engine.cards import RANK_ACE, RANK_VALUES, ranks_from_str
from bjsolver.engine.hand import Hand, hand_from_ranks, hand_from_str
from bjsolver.engine.rules import BLACKJACK, BUST, DEFAULT_RULES, DealerResult, Rules
from bjsolver.engine.shoe import Shoe, build_shoe_from_hands, create_shoe
from bjsolver.solvers.memo import MemoCache


def hand(*rank_strs: str) -> Hand:
    """Build a hand from human-readable rank strings.

    Examples:
        >>> hand('A', 'K').is_blackjack
        True
        >>> hand('8', '8').is_pair
        True
    """
    return hand_from_str(" ".join(rank_strs))


def shoe_after(*rank_strs: str, deck_count: int = 1) -> Shoe:
    """Full shoe minus the named ranks.

    Examples:
        >>> shoe_after('8', '8', '6').total
        49
    """
    return build_shoe_from_hands(deck_count, ranks_from_str(" ".join(rank_strs)))


def brute_force_dealer(
    up_card: int,
    shoe: Shoe,
    rules: Rules = DEFAULT_RULES,
) -> dict[DealerResult, float]:
    """Enumerate every dealer draw sequence, with no memoization or state abstraction."""
    result: dict[DealerResult, float] = {}

    def add(key: DealerResult, weight: float) -> None:
        result[key] = result.get(key, 0.0) + weight

    def play(cards: list[int], counts: list[int], weight: float) -> None:
        hard = sum(RANK_VALUES[c] for c in cards)
        has_ace = RANK_ACE in cards
        if len(cards) == 2 and has_ace and hard == 11:
            add(BLACKJACK, weight)
            return
        if hard > 21:
            add(BUST, weight)
            return
        soft = has_ace and hard + 10 <= 21
        total = hard + 10 if soft else hard
        if len(cards) >= 2 and (
            total > 17 or (total == 17 and not (soft and rules.dealer_hits_soft17))
        ):
            add(total, weight)
            return
        remaining = sum(counts)
        if remaining == 0:
            add(total, weight)
            return
        for rank, n in enumerate(counts):
            if n:
                nxt = list(counts)
                nxt[rank] -= 1
                play(cards + [rank], nxt, weight * n / remaining)

    play([up_card], list(shoe.counts), 1.0)
    return result


def brute_force_split(
    pair_rank: int,
    up_card: int,
    shoe: Shoe,
    rules: Rules = DEFAULT_RULES,
) -> float:
    """Exact EV of splitting a pair by exhaustive search, with no memoization.

    Sub-hands are dealt and played strictly in turn, each on whatever the
    earlier ones left.  The dealer then plays out the final shoe and every
    sub-hand is settled against that one dealer hand.  Each decision takes the
    option with the best EV for the split as a whole.
    """
    one_card = pair_rank == RANK_ACE and rules.split_aces_one_card

    def totals(cards: list[int]) -> tuple[int, int]:
        hard = sum(RANK_VALUES[c] for c in cards)
        soft = RANK_ACE in cards and hard + 10 <= 21
        return hard, hard + 10 if soft else hard

    def charlie(cards: list[int]) -> bool:
        return rules.charlie_cards is not None and len(cards) >= rules.charlie_cards

    def payout(cards: list[int], stake: int, dist: dict[DealerResult, float]) -> float:
        hard, best = totals(cards)
        if hard > 21:
            return -stake
        if charlie(cards):
            return stake
        ev = 0.0
        for result, p in dist.items():
            if result == BLACKJACK:
                ev -= p
            elif result == BUST or best > result:
                ev += p
            elif best < result:
                ev -= p
        return stake * ev

    def draws(counts: list[int]):
        remaining = sum(counts)
        for rank, n in enumerate(counts):
            if n:
                nxt = list(counts)
                nxt[rank] -= 1
                yield rank, n / remaining, nxt

    def settle(done: list, counts: list[int]) -> float:
        dist = brute_force_dealer(up_card, Shoe(tuple(counts)), rules)
        return sum(payout(cards, stake, dist) for cards, stake in done)

    def advance(done: list, pending: list, counts: list[int]) -> float:
        if not pending:
            return settle(done, counts)
        cards, depth = pending[0]
        return deal(done, cards, depth, pending[1:], counts)

    def deal(done: list, cards: list[int], depth: int, pending: list, counts: list[int]) -> float:
        # The hidden card must stay in the shoe.
        if sum(counts) < 2:
            return advance(done + [(cards, 1)], pending, counts)
        ev = 0.0
        for rank, p, nxt in draws(counts):
            if one_card:
                ev += p * advance(done + [(cards + [rank], 1)], pending, nxt)
            else:
                ev += p * play(done, cards + [rank], depth, pending, nxt)
        return ev

    def play(done: list, cards: list[int], depth: int, pending: list, counts: list[int]) -> float:
        hard, best = totals(cards)
        options = [advance(done + [(cards, 1)], pending, counts)]
        if hard > 21 or charlie(cards):
            return options[0]
        can_draw = sum(counts) >= 2
        if best < 21 and can_draw:
            options.append(
                sum(p * play(done, cards + [r], depth, pending, nxt) for r, p, nxt in draws(counts))
            )
        if (
            len(cards) == 2
            and can_draw
            and rules.double_after_split
            and rules.double_allowed_for(hand_from_ranks(*cards, split_depth=depth))
        ):
            options.append(
                sum(p * advance(done + [(cards + [r], 2)], pending, nxt) for r, p, nxt in draws(counts))
            )
        if (
            len(cards) == 2
            and cards[0] == cards[1]
            and depth <= rules.resplit_limit
            and sum(counts) >= 3
        ):
            half = [cards[0]]
            options.append(deal(done, half, depth + 1, [(half, depth + 1)] + pending, counts))
        return max(options)

    return deal([], [pair_rank], 1, [([pair_rank], 1)], list(shoe.counts))


@pytest.fixture
def fresh_shoe() -> Shoe:
    """Return a full single-deck shoe."""
    return create_shoe(1)


@pytest.fixture
def cache() -> MemoCache:
    """Return an empty, private memo cache."""
    return MemoCache()


@pytest.fixture
def h():
    """Expose the hand() helper as a fixture for convenience."""
    return hand


def synthetic_chart() -> StrategyChart:
    """Small hand-written chart for rendering tests (no solving)."""
    hard = ChartSection(
        name="hard",
        row_labels=["16", "17"],
        hands=[hard_hand(16), hard_hand(17)],
        actions=np.array([[0, 1, 4], [0, 0, 0]], dtype=np.int8),
        ev=np.array([[-0.15, -0.54, -0.5], [0.01, -0.42, -0.64]]),
    )
    pairs = ChartSection(
        name="pairs",
        row_labels=["8,8"],
        hands=[pair_hand(7)],
        actions=np.array([[3, 3, 1]], dtype=np.int8),
        ev=np.array([[0.12, -0.48, -0.6]]),
    )
    return StrategyChart(
        rules=DEFAULT_RULES,
        up_cards=[5, 9, RANK_ACE],
        sections={"hard": hard, "pairs": pairs},
    )


@pytest.fixture
def chart() -> StrategyChart:
    return synthetic_chart()
