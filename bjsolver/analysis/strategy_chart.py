"""Composition-dependent strategy charts.

Solves every (player hand, dealer up-card) cell of a classic basic-strategy
chart against the shoe left after that hand and up-card are dealt from a full
shoe, and stores the results as NumPy matrices:

    build_strategy_chart(rules, ...)   — StrategyChart with one ChartSection per
                                         hand family (hard, soft, pairs)
    print_strategy_chart(chart, label) — terminal grid of action symbols

Matrix convention (every section):
    Shape  : (rows, len(up_cards)) — rows = hands of the section,
                                     cols = dealer up-cards (2..10, A by default)
    actions: int8 action codes, index into ACTION_ORDER
    ev     : float64 EV of the best action

Run as a script to print a chart for a given rule set:

    python -m bjsolver.analysis.strategy_chart --decks 1 --sections hard soft
"""

from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from bjsolver.engine.cards import RANK_ACE, RANK_TEN, rank_to_str, str_to_rank
from bjsolver.engine.hand import Hand, hand_from_ranks
from bjsolver.engine.rules import DEFAULT_RULES, PeekPolicy, Rules
from bjsolver.engine.shoe import build_shoe_from_hands
from bjsolver.solvers.composition_dp import ACTION_ORDER, Action, solve
from bjsolver.solvers.memo import MemoCache

logger = logging.getLogger(__name__)

# ─── Constants ────────────────────────────────────────────────────────────────

# Conventional column order: 2..10 then Ace.
DEALER_UP_CARDS: list[int] = [1, 2, 3, 4, 5, 6, 7, 8, 9, RANK_ACE]

HARD_TOTALS: list[int] = list(range(5, 18))
SOFT_TOTALS: list[int] = list(range(13, 21))
PAIR_RANKS: list[int] = [1, 2, 3, 4, 5, 6, 7, 8, RANK_TEN, RANK_ACE]

SECTIONS: tuple[str, ...] = ("hard", "soft", "pairs")

ACTION_CODES: dict[Action, int] = {action: i for i, action in enumerate(ACTION_ORDER)}
ACTION_SYMBOLS: dict[Action, str] = {
    Action.STAND: "S",
    Action.HIT: "H",
    Action.DOUBLE: "D",
    Action.SPLIT: "P",
    Action.SURRENDER: "R",
}


# ─── Chart records ────────────────────────────────────────────────────────────


@dataclass
class ChartSection:
    """One hand family of a strategy chart.

    Attributes:
        name:       "hard", "soft" or "pairs".
        row_labels: Display label per row.
        hands:      Representative two-card hand per row.
        actions:    (rows, cols) int8 matrix of action codes.
        ev:         (rows, cols) float64 matrix of best-action EVs.
    """

    name: str
    row_labels: list[str]
    hands: list[Hand]
    actions: np.ndarray
    ev: np.ndarray

    def action_at(self, row: int, col: int) -> Action:
        return ACTION_ORDER[int(self.actions[row, col])]


@dataclass
class StrategyChart:
    """Solved chart for one rule set."""

    rules: Rules
    up_cards: list[int]
    sections: dict[str, ChartSection] = field(default_factory=dict)

    @property
    def col_labels(self) -> list[str]:
        return [rank_to_str(r) for r in self.up_cards]


# ─── Representative hands ─────────────────────────────────────────────────────


def hard_hand(total: int) -> Hand:
    """Two-card, non-pair, Ace-free hand with the given hard total.

    Examples:
        >>> hard_hand(16).ranks()
        (5, 9)
    """
    if not 5 <= total <= 19:
        raise ValueError(f"No two-card non-pair hard hand totals {total}.")
    low = max(2, total - 10)
    return hand_from_ranks(low - 1, total - low - 1)


def soft_hand(total: int) -> Hand:
    """Ace plus one non-Ace card with the given soft total (13..21)."""
    if not 13 <= total <= 21:
        raise ValueError(f"No two-card soft hand totals {total}.")
    return hand_from_ranks(RANK_ACE, total - 12)


def pair_hand(rank: int) -> Hand:
    return hand_from_ranks(rank, rank)


# ─── Builder ──────────────────────────────────────────────────────────────────


def _section_rows(
    name: str,
    hard_totals: Sequence[int],
    soft_totals: Sequence[int],
    pair_ranks: Sequence[int],
) -> tuple[list[str], list[Hand]]:
    if name == "hard":
        return [f"{t}" for t in hard_totals], [hard_hand(t) for t in hard_totals]
    if name == "soft":
        return (
            [f"A,{rank_to_str(t - 12)}" for t in soft_totals],
            [soft_hand(t) for t in soft_totals],
        )
    if name == "pairs":
        return (
            [f"{rank_to_str(r)},{rank_to_str(r)}" for r in pair_ranks],
            [pair_hand(r) for r in pair_ranks],
        )
    raise ValueError(f"Unknown chart section {name!r}; expected one of {SECTIONS}.")


def build_strategy_chart(
    rules: Rules = DEFAULT_RULES,
    *,
    sections: Sequence[str] = SECTIONS,
    up_cards: Sequence[int] | None = None,
    hard_totals: Sequence[int] = HARD_TOTALS,
    soft_totals: Sequence[int] = SOFT_TOTALS,
    pair_ranks: Sequence[int] = PAIR_RANKS,
    memo: MemoCache | None = None,
) -> StrategyChart:
    """Solve every requested chart cell against its own depleted shoe.

    Each cell starts from a full ``rules.deck_count`` shoe minus the row's
    hand and the column's up-card.

    Args:
        rules:       Table rules.
        sections:    Hand families to solve, any of "hard", "soft", "pairs".
        up_cards:    Dealer up-card ranks (columns); defaults to 2..10, A.
        hard_totals: Rows of the hard section.
        soft_totals: Rows of the soft section.
        pair_ranks:  Rows of the pairs section.
        memo:        Cache to solve with; a fresh one by default.  Every cell has
                     its own shoe, so each solve() starts a new session and
                     clears whatever the previous cell stored.

    Returns:
        StrategyChart holding one ChartSection per requested family.
    """
    cols = list(DEALER_UP_CARDS if up_cards is None else up_cards)
    if memo is None:
        memo = MemoCache()
    chart = StrategyChart(rules=rules, up_cards=cols)

    for name in sections:
        labels, hands = _section_rows(name, hard_totals, soft_totals, pair_ranks)
        actions = np.zeros((len(hands), len(cols)), dtype=np.int8)
        ev = np.zeros((len(hands), len(cols)), dtype=np.float64)

        t0 = time.perf_counter()
        for r, hand in enumerate(hands):
            for c, up in enumerate(cols):
                shoe = build_shoe_from_hands(rules.deck_count, hand.ranks(), (up,))
                result = solve(hand, up, shoe, rules, memo)
                actions[r, c] = ACTION_CODES[result.best_action]
                ev[r, c] = result.ev
        logger.debug(
            "Solved %s section (%d cells) in %.2fs",
            name,
            actions.size,
            time.perf_counter() - t0,
        )

        chart.sections[name] = ChartSection(
            name=name, row_labels=labels, hands=hands, actions=actions, ev=ev
        )

    return chart


# ─── Display ──────────────────────────────────────────────────────────────────


def print_strategy_chart(chart: StrategyChart, label: str, *, show_ev: bool = False) -> None:
    """Print the chart as a terminal grid.

    Cells: S (stand), H (hit), D (double), P (split), R (surrender).
    When ``show_ev=True``, a grid of best-action EVs follows each section.
    """
    col_w = 7
    header = "".join(f"{lbl:>{col_w}}" for lbl in chart.col_labels)
    divider = "─" * (8 + col_w * len(chart.up_cards))

    print(f"\nStrategy Chart: {label}")
    for section in chart.sections.values():
        print(f"\n{section.name.capitalize():8}{header}")
        print(divider)
        for r, row_label in enumerate(section.row_labels):
            cells = "".join(
                f"{ACTION_SYMBOLS[section.action_at(r, c)]:>{col_w}}"
                for c in range(len(chart.up_cards))
            )
            print(f"{row_label:<8}{cells}")

        if show_ev:
            print(f"\n{'EV':8}{header}")
            print(divider)
            for r, row_label in enumerate(section.row_labels):
                cells = "".join(f"{v:>+{col_w}.3f}" for v in section.ev[r])
                print(f"{row_label:<8}{cells}")


# ─── CLI ──────────────────────────────────────────────────────────────────────

_PEEK_CHOICES: dict[str, PeekPolicy] = {
    "none": PeekPolicy.NO_PEEK,
    "ace": PeekPolicy.UP_ACE,
    "ace-ten": PeekPolicy.UP_ACE_OR_TEN,
}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m bjsolver.analysis.strategy_chart",
        description="Print a composition-dependent Blackjack strategy chart.",
    )
    parser.add_argument("--decks", type=int, default=1, help="decks in the shoe")
    parser.add_argument("--h17", action="store_true", help="dealer hits soft 17")
    parser.add_argument("--no-das", action="store_true", help="no double after split")
    parser.add_argument("--resplit", type=int, default=0, help="extra splits allowed")
    parser.add_argument("--surrender", action="store_true", help="allow late surrender")
    parser.add_argument("--peek", choices=sorted(_PEEK_CHOICES), default="none")
    parser.add_argument("--charlie", type=int, default=None, help="N-card Charlie")
    parser.add_argument(
        "--sections", nargs="+", choices=SECTIONS, default=list(SECTIONS)
    )
    parser.add_argument("--up", nargs="+", default=None, help="dealer up-cards, e.g. 6 10 A")
    parser.add_argument("--ev", action="store_true", help="print EV grids too")
    parser.add_argument("--heatmap", default=None, help="save a matplotlib heat map here")
    parser.add_argument("--html", default=None, help="save an interactive plotly chart here")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> StrategyChart:
    """Command-line entry point; returns the solved chart."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    rules = Rules(
        deck_count=args.decks,
        dealer_hits_soft17=args.h17,
        double_after_split=not args.no_das,
        resplit_limit=args.resplit,
        surrender_allowed=args.surrender,
        peek_policy=_PEEK_CHOICES[args.peek],
        charlie_cards=args.charlie,
    )
    up_cards = None if args.up is None else [str_to_rank(s) for s in args.up]

    t0 = time.perf_counter()
    chart = build_strategy_chart(rules, sections=args.sections, up_cards=up_cards)
    elapsed = time.perf_counter() - t0

    label = f"{args.decks} deck(s), {'H17' if args.h17 else 'S17'}"
    print_strategy_chart(chart, label, show_ev=args.ev)
    print(f"\nSolved in {elapsed:.2f}s")

    if args.heatmap is not None:
        from bjsolver.analysis.heat_maps import plot_strategy_heatmaps

        plot_strategy_heatmaps(chart, f"Strategy  ({label})", show=False, save_path=args.heatmap)
        print(f"Saved: {args.heatmap}")
    if args.html is not None:
        from bjsolver.analysis.plotly_lookup import build_lookup_figure, save_lookup_html

        save_lookup_html(build_lookup_figure(chart), args.html)
        print(f"Saved: {args.html}")

    return chart


if __name__ == "__main__":
    main()
