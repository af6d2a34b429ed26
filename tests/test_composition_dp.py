"""
Tests for bjsolver/solvers/composition_dp.py — player action EVs and solve().

Scenarios use a single deck unless stated otherwise, with the player's cards
and the dealer up-card already removed from the shoe.
"""

from __future__ import annotations

import pytest

from bjsolver.engine.cards import RANK_ACE, RANK_TEN
from bjsolver.engine.errors import IllegalAction, InvalidShoe
from bjsolver.engine.hand import hand_from_ranks
from bjsolver.engine.rules import DoublePolicy, PeekPolicy, Rules, settle_against_distribution
from bjsolver.engine.shoe import Shoe, create_shoe
from bjsolver.solvers.composition_dp import (
    ACTION_ORDER,
    SURRENDER_EV,
    Action,
    StrategyResult,
    best_action,
    ev_of,
    insurance_ev,
    legal_actions,
    solve,
)
from bjsolver.solvers.memo import MemoCache
from tests.conftest import brute_force_dealer, brute_force_split, hand, shoe_after

SIX = 5  # rank index of a 6 up-card
NO_DAS = Rules(double_after_split=False)


# ─── Constants ────────────────────────────────────────────────────────────────


class TestActionOrder:
    def test_tie_break_order(self):
        assert ACTION_ORDER == (
            Action.STAND,
            Action.HIT,
            Action.DOUBLE,
            Action.SPLIT,
            Action.SURRENDER,
        )

    def test_surrender_value(self):
        assert SURRENDER_EV == -0.5


# ─── Legality ─────────────────────────────────────────────────────────────────


class TestLegalActions:
    def test_pair_can_split(self, fresh_shoe):
        assert legal_actions(hand("8", "8"), fresh_shoe) == [
            Action.STAND,
            Action.HIT,
            Action.DOUBLE,
            Action.SPLIT,
        ]

    def test_non_pair_cannot_split(self, fresh_shoe):
        assert Action.SPLIT not in legal_actions(hand("8", "9"), fresh_shoe)

    def test_hit_hand_cannot_double_or_split(self, fresh_shoe):
        actions = legal_actions(hand("4", "4", "2"), fresh_shoe, Rules(surrender_allowed=True))
        assert actions == [Action.STAND, Action.HIT]

    def test_bust_hand_only_stands(self, fresh_shoe):
        assert legal_actions(hand("10", "10", "5"), fresh_shoe) == [Action.STAND]

    def test_twenty_one_cannot_hit(self, fresh_shoe):
        assert Action.HIT not in legal_actions(hand("7", "7", "7"), fresh_shoe)

    def test_natural_only_stands(self, fresh_shoe):
        assert legal_actions(hand("A", "K"), fresh_shoe) == [Action.STAND]

    def test_surrender_needs_rule(self, fresh_shoe):
        assert Action.SURRENDER not in legal_actions(hand("10", "6"), fresh_shoe)
        rules = Rules(surrender_allowed=True)
        assert Action.SURRENDER in legal_actions(hand("10", "6"), fresh_shoe, rules)

    def test_no_surrender_after_split(self, fresh_shoe):
        rules = Rules(surrender_allowed=True)
        split_hand = hand_from_ranks(9, 5, split_depth=1)
        assert Action.SURRENDER not in legal_actions(split_hand, fresh_shoe, rules)

    def test_double_after_split_flag(self, fresh_shoe):
        split_hand = hand_from_ranks(4, 5, split_depth=1)
        assert Action.DOUBLE in legal_actions(split_hand, fresh_shoe)
        assert Action.DOUBLE not in legal_actions(split_hand, fresh_shoe, NO_DAS)

    def test_resplit_limit(self, fresh_shoe):
        split_pair = hand_from_ranks(6, 6, split_depth=1)
        assert Action.SPLIT not in legal_actions(split_pair, fresh_shoe)
        assert Action.SPLIT in legal_actions(split_pair, fresh_shoe, Rules(resplit_limit=1))

    def test_double_policy(self, fresh_shoe):
        rules = Rules(double_policy=DoublePolicy.TEN_ELEVEN)
        assert Action.DOUBLE in legal_actions(hand("5", "6"), fresh_shoe, rules)
        assert Action.DOUBLE not in legal_actions(hand("4", "5"), fresh_shoe, rules)

    def test_charlie_reached_only_stands(self, fresh_shoe):
        rules = Rules(charlie_cards=5)
        assert legal_actions(hand("2", "2", "3", "3", "4"), fresh_shoe, rules) == [Action.STAND]

    def test_single_card_shoe_cannot_hit(self):
        # The last card is the dealer's hidden card.
        shoe = Shoe((0, 0, 0, 0, 0, 0, 0, 0, 0, 1))
        assert legal_actions(hand("10", "2"), shoe) == [Action.STAND]


# ─── Stand ────────────────────────────────────────────────────────────────────


class TestStand:
    @pytest.mark.parametrize(
        "cards, up_card",
        [(("10", "7"), SIX), (("10", "9"), RANK_TEN), (("9", "3"), 3), (("A", "8"), 6)],
    )
    def test_matches_brute_force_distribution(self, cards, up_card, cache):
        h = hand(*cards)
        shoe = create_shoe(1).remove_many(h.ranks()).remove(up_card)
        direct = ev_of(h, up_card, shoe, Action.STAND, memo=cache)
        via_dist = settle_against_distribution(h, brute_force_dealer(up_card, shoe))
        assert direct == pytest.approx(via_dist, abs=1e-9)

    def test_natural_vs_six_pays_full(self, cache):
        result = solve(hand("A", "10"), SIX, shoe_after("A", "10", "6"), memo=cache)
        assert result.best_action is Action.STAND
        assert result.ev == pytest.approx(1.5)
        assert result.ev_per_action == {Action.STAND: pytest.approx(1.5)}

    def test_monotone_in_bust_cards(self):
        # 20 vs 6: a shoe of only tens busts the dealer every time.
        rules = Rules(deck_count=2)
        rich = Shoe((0, 0, 0, 0, 0, 0, 0, 0, 0, 20))
        mixed = Shoe((0, 0, 0, 0, 4, 0, 0, 0, 0, 20))
        ev_rich = ev_of(hand("10", "10"), SIX, rich, Action.STAND, rules, MemoCache())
        ev_mixed = ev_of(hand("10", "10"), SIX, mixed, Action.STAND, rules, MemoCache())
        assert ev_rich == pytest.approx(1.0)
        assert ev_rich >= ev_mixed
        assert ev_mixed < 1.0


# ─── Hit / Double ─────────────────────────────────────────────────────────────


class TestHitDouble:
    def test_eleven_vs_six_double_beats_hit(self, cache):
        shoe = shoe_after("5", "6", "6")
        ev_hit = ev_of(hand("5", "6"), SIX, shoe, Action.HIT, memo=cache)
        ev_double = ev_of(hand("5", "6"), SIX, shoe, Action.DOUBLE, memo=cache)
        assert ev_double >= ev_hit
        assert best_action(hand("5", "6"), SIX, shoe, memo=cache)[0] is Action.DOUBLE

    def test_eleven_double_drops_without_tens(self):
        full = shoe_after("5", "6", "6")
        counts = list(full.counts)
        counts[RANK_TEN] = 0
        stripped = Shoe(tuple(counts))
        ev_full = ev_of(hand("5", "6"), SIX, full, Action.DOUBLE, memo=MemoCache())
        ev_stripped = ev_of(hand("5", "6"), SIX, stripped, Action.DOUBLE, memo=MemoCache())
        assert ev_stripped < ev_full

    def test_hard_20_stands(self, cache):
        action, ev = best_action(hand("10", "10"), SIX, shoe_after("10", "10", "6"), memo=cache)
        assert action is Action.STAND
        assert ev > 0.5

    def test_double_on_hit_hand_is_illegal(self, cache):
        with pytest.raises(IllegalAction):
            ev_of(hand("2", "3", "4"), SIX, shoe_after("2", "3", "4", "6"), Action.DOUBLE, memo=cache)

    def test_hit_hand_never_doubles_or_splits(self, cache):
        result = solve(hand("2", "3", "4"), SIX, shoe_after("2", "3", "4", "6"), memo=cache)
        assert result.best_action in (Action.STAND, Action.HIT)
        assert set(result.ev_per_action) == {Action.STAND, Action.HIT}

    def test_charlie_makes_hitting_a_sure_win(self, cache):
        rules = Rules(charlie_cards=5)
        h = hand("2", "2", "3", "3")
        ev = ev_of(h, RANK_TEN, shoe_after("2", "2", "3", "3", "10"), Action.HIT, rules, cache)
        assert ev == pytest.approx(1.0)

    def test_tie_goes_to_stand(self):
        # Dealer always busts and any hit reaches a five-card Charlie: both EVs are +1.
        rules = Rules(deck_count=2, charlie_cards=5)
        shoe = Shoe((0, 0, 0, 0, 0, 0, 0, 0, 0, 20))
        result = solve(hand("2", "2", "3", "3"), SIX, shoe, rules, MemoCache())
        assert result.ev_per_action[Action.STAND] == pytest.approx(1.0)
        assert result.ev_per_action[Action.HIT] == pytest.approx(1.0)
        assert result.best_action is Action.STAND


# ─── Split ────────────────────────────────────────────────────────────────────


class TestSplit:
    def test_eights_vs_six_split(self, cache):
        result = solve(hand("8", "8"), SIX, shoe_after("8", "8", "6"), memo=cache)
        ev = result.ev_per_action
        assert ev[Action.SPLIT] > ev[Action.STAND]
        assert ev[Action.SPLIT] > ev[Action.HIT]
        assert result.best_action is Action.SPLIT

    def test_split_non_pair_is_illegal(self, cache):
        with pytest.raises(IllegalAction):
            ev_of(hand("8", "9"), SIX, shoe_after("8", "9", "6"), Action.SPLIT, memo=cache)

    def test_split_aces_one_card_beats_standing(self, cache):
        rules = Rules(split_aces_one_card=True)
        shoe = shoe_after("A", "A", "6")
        ev_split = ev_of(hand("A", "A"), SIX, shoe, Action.SPLIT, rules, cache)
        ev_stand = ev_of(hand("A", "A"), SIX, shoe, Action.STAND, rules, cache)
        assert ev_split > ev_stand
        assert ev_split > 0.0

    @pytest.mark.parametrize(
        "pair, up, counts, rules",
        [
            ("8", RANK_TEN, (0, 1, 1, 1, 0, 0, 1, 0, 1, 4), Rules(double_after_split=False)),
            ("8", RANK_TEN, (0, 1, 1, 1, 0, 0, 1, 0, 1, 4), Rules(double_after_split=True)),
            ("9", 1, (0, 2, 0, 1, 1, 0, 1, 2, 0, 1), Rules(double_after_split=False)),
            ("9", 1, (0, 2, 0, 1, 1, 0, 1, 2, 0, 1), Rules(double_after_split=True)),
            (
                "3",
                RANK_TEN,
                (0, 1, 2, 0, 1, 0, 0, 1, 0, 3),
                Rules(resplit_limit=1, double_after_split=False),
            ),
            ("3", RANK_TEN, (0, 1, 2, 0, 1, 0, 0, 1, 0, 3), Rules(resplit_limit=1)),
            ("A", SIX, (1, 0, 1, 0, 1, 0, 1, 0, 0, 4), Rules(split_aces_one_card=True)),
            ("A", SIX, (1, 0, 1, 0, 1, 0, 1, 0, 0, 4), Rules(resplit_limit=1)),
        ],
    )
    def test_matches_sequential_enumeration(self, pair, up, counts, rules):
        pair_hand = hand(pair, pair)
        ev = ev_of(pair_hand, up, Shoe(counts), Action.SPLIT, rules, MemoCache())
        expected = brute_force_split(pair_hand.pair_rank, up, Shoe(counts), rules)
        assert ev == pytest.approx(expected, abs=1e-9)

    def test_second_hand_plays_on_what_first_hand_left(self):
        # Only two 2s and three tens remain: whether sub-hand one hits
        # decides which cards sub-hand two and the dealer can still see.
        counts = (0, 2, 0, 0, 0, 0, 0, 0, 0, 3)
        rules = Rules(double_after_split=False)
        ev = ev_of(hand("7", "7"), RANK_TEN, Shoe(counts), Action.SPLIT, rules, MemoCache())
        assert ev == pytest.approx(brute_force_split(6, RANK_TEN, Shoe(counts), rules), abs=1e-9)

    def test_resplit_limit_adds_value_with_pairs_in_shoe(self):
        counts = (0, 1, 2, 0, 1, 0, 0, 1, 0, 3)
        once = ev_of(hand("3", "3"), RANK_TEN, Shoe(counts), Action.SPLIT, NO_DAS, MemoCache())
        twice = ev_of(
            hand("3", "3"),
            RANK_TEN,
            Shoe(counts),
            Action.SPLIT,
            Rules(double_after_split=False, resplit_limit=1),
            MemoCache(),
        )
        assert twice >= once


# ─── Surrender ────────────────────────────────────────────────────────────────


class TestSurrender:
    def test_exact_half_loss(self, cache):
        rules = Rules(surrender_allowed=True)
        shoe = shoe_after("10", "6", "10")
        assert ev_of(hand("10", "6"), RANK_TEN, shoe, Action.SURRENDER, rules, cache) == -0.5

    def test_illegal_without_rule(self, cache):
        with pytest.raises(IllegalAction):
            ev_of(hand("10", "6"), RANK_TEN, shoe_after("10", "6", "10"), Action.SURRENDER, memo=cache)

    def test_after_peek_loses_full_bet_to_natural(self, cache):
        rules = Rules(surrender_allowed=True, peek_policy=PeekPolicy.UP_ACE_OR_TEN)
        shoe = shoe_after("10", "6", "10")
        p_bj = 4 / 49
        ev = ev_of(hand("10", "6"), RANK_TEN, shoe, Action.SURRENDER, rules, cache)
        assert ev == pytest.approx(p_bj * -1.0 + (1.0 - p_bj) * -0.5)


# ─── Peek ─────────────────────────────────────────────────────────────────────


class TestPeek:
    def test_natural_vs_ace_same_with_or_without_peek(self):
        shoe = shoe_after("A", "10", "A")
        expected = (1.0 - 15 / 49) * 1.5
        no_peek = ev_of(hand("A", "10"), RANK_ACE, shoe, Action.STAND, memo=MemoCache())
        peek = ev_of(
            hand("A", "10"),
            RANK_ACE,
            shoe,
            Action.STAND,
            Rules(peek_policy=PeekPolicy.UP_ACE),
            MemoCache(),
        )
        assert no_peek == pytest.approx(expected)
        assert peek == pytest.approx(expected)

    def test_stand_unchanged_by_peek(self):
        shoe = shoe_after("10", "10", "A")
        no_peek = ev_of(hand("10", "10"), RANK_ACE, shoe, Action.STAND, memo=MemoCache())
        peek = ev_of(
            hand("10", "10"),
            RANK_ACE,
            shoe,
            Action.STAND,
            Rules(peek_policy=PeekPolicy.UP_ACE),
            MemoCache(),
        )
        assert peek == pytest.approx(no_peek, abs=1e-9)

    def test_peek_helps_doubling(self):
        shoe = shoe_after("5", "6", "A")
        no_peek = ev_of(hand("5", "6"), RANK_ACE, shoe, Action.DOUBLE, memo=MemoCache())
        peek = ev_of(
            hand("5", "6"),
            RANK_ACE,
            shoe,
            Action.DOUBLE,
            Rules(peek_policy=PeekPolicy.UP_ACE),
            MemoCache(),
        )
        assert peek > no_peek

    def test_certain_dealer_natural(self):
        # Only tens left: the peeked dealer must hold a natural.
        rules = Rules(deck_count=2, peek_policy=PeekPolicy.UP_ACE)
        shoe = Shoe((0, 0, 0, 0, 0, 0, 0, 0, 0, 10))
        result = solve(hand("9", "7"), RANK_ACE, shoe, rules, MemoCache())
        assert result.dealer_blackjack_prob == 1.0
        assert result.ev == -1.0


# ─── solve() ──────────────────────────────────────────────────────────────────


class TestSolve:
    def test_result_fields(self, cache):
        result = solve(hand("10", "7"), RANK_ACE, shoe_after("10", "7", "A"), memo=cache)
        assert isinstance(result, StrategyResult)
        assert result.ev == result.ev_per_action[result.best_action]
        assert result.ev == max(result.ev_per_action.values())
        assert result.dealer_blackjack_prob == pytest.approx(15 / 49)
        assert result.insurance_ev == pytest.approx(15 / 49 * 2.0 - 34 / 49)

    def test_no_insurance_without_ace(self, cache):
        result = solve(hand("10", "7"), SIX, shoe_after("10", "7", "6"), memo=cache)
        assert result.insurance_ev is None
        assert result.dealer_blackjack_prob == 0.0

    def test_deterministic(self):
        args = (hand("10", "6"), RANK_TEN, shoe_after("10", "6", "10"))
        first = solve(*args, memo=MemoCache())
        second = solve(*args, memo=MemoCache())
        third = solve(*args)
        assert (first.best_action, first.ev) == (second.best_action, second.ev)
        assert (first.best_action, first.ev) == (third.best_action, third.ev)
        assert first.ev_per_action == second.ev_per_action

    def test_accepts_ranks_and_counts(self, cache):
        shoe = shoe_after("10", "7", "6")
        from_objects = solve(hand("10", "7"), SIX, shoe, memo=cache)
        from_raw = solve((RANK_TEN, 6), SIX, list(shoe.counts), memo=cache)
        assert from_raw.ev == from_objects.ev
        assert from_raw.best_action is from_objects.best_action

    def test_cache_reused_within_session(self, cache):
        shoe = shoe_after("10", "6", "10")
        solve(hand("10", "6"), RANK_TEN, shoe, memo=cache)
        size = len(cache)
        solve(hand("10", "6"), RANK_TEN, shoe, memo=cache)
        assert len(cache) == size
        assert cache.stats().hits > 0

    def test_overfull_shoe_raises(self, cache):
        # Full deck plus two dealt tens is more than 16 tens.
        with pytest.raises(InvalidShoe):
            solve(hand("10", "10"), SIX, create_shoe(1), memo=cache)

    def test_bad_counts_raise(self, cache):
        with pytest.raises(InvalidShoe):
            solve(hand("10", "7"), SIX, [4] * 9, memo=cache)

    def test_bad_up_card_raises(self, cache):
        with pytest.raises(ValueError):
            solve(hand("10", "7"), 10, shoe_after("10", "7"), memo=cache)


class TestInsurance:
    def test_formula(self):
        shoe = shoe_after("A")
        assert insurance_ev(RANK_ACE, shoe) == pytest.approx(16 / 51 * 2.0 - 35 / 51)

    def test_rich_shoe_insurance_positive(self):
        shoe = Shoe((3, 0, 0, 0, 0, 0, 0, 0, 0, 16))
        assert insurance_ev(RANK_ACE, shoe) > 0.0

    def test_not_offered(self):
        assert insurance_ev(RANK_TEN, shoe_after("10")) is None
