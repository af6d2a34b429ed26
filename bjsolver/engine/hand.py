"""
Hand model: an unordered tally of ranks with running totals.

Draw order never affects blackjack value, so a hand is stored as a rank
count tuple plus the running hard total and card count.  Every derived
property (soft total, bust, natural, pair) is O(1) from those fields.

Ace valuation:
    hard total  = every Ace counts 1
    soft total  = hard total + 10, when the hand holds an Ace and that stays <= 21

A hand also remembers how many splits produced it (``split_depth``).  That
depth gates re-splitting, double-after-split and natural-blackjack status.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .cards import NUM_RANKS, RANK_ACE, RANK_VALUES, ranks_from_str, ranks_to_str

_EMPTY_COUNTS: tuple[int, ...] = (0,) * NUM_RANKS


@dataclass(frozen=True)
class Hand:
    """Immutable rank tally.

    Attributes:
        counts:      Cards held per rank, length 10.
        split_depth: Number of splits that produced this hand (0 = dealt hand).
        hard_total:  Sum with every Ace counted as 1 (derived).
        num_cards:   Cards held (derived).
    """

    counts: tuple[int, ...] = _EMPTY_COUNTS
    split_depth: int = 0
    hard_total: int = field(init=False, repr=False, compare=False)
    num_cards: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "hard_total", sum(n * v for n, v in zip(self.counts, RANK_VALUES))
        )
        object.__setattr__(self, "num_cards", sum(self.counts))

    # ── Mutation (by copy) ────────────────────────────────────────────────────

    def add(self, rank: int) -> Hand:
        """Return a new hand with ``rank`` appended."""
        counts = list(self.counts)
        counts[rank] += 1
        return Hand(tuple(counts), self.split_depth)

    def split_child(self) -> Hand:
        """Return one half of this pair as a one-card hand, one split deeper."""
        counts = [0] * NUM_RANKS
        counts[self.pair_rank] = 1
        return Hand(tuple(counts), self.split_depth + 1)

    # ── Derived values ────────────────────────────────────────────────────────

    @property
    def soft_total(self) -> int | None:
        """Total with one Ace counted as 11, or None if no Ace fits.

        Examples:
            >>> hand_from_str('A 6').soft_total
            17
            >>> hand_from_str('A 6 9').soft_total is None
            True
        """
        if self.counts[RANK_ACE] and self.hard_total + 10 <= 21:
            return self.hard_total + 10
        return None

    @property
    def best_total(self) -> int:
        soft = self.soft_total
        return self.hard_total if soft is None else soft

    @property
    def is_soft(self) -> bool:
        return self.soft_total is not None

    @property
    def is_bust(self) -> bool:
        return self.hard_total > 21

    @property
    def is_initial_hand(self) -> bool:
        """True for an untouched two-card hand (no Hit taken yet).

        A split sub-hand becomes initial again once it receives its second card.
        """
        return self.num_cards == 2

    @property
    def is_pair(self) -> bool:
        return self.num_cards == 2 and max(self.counts) == 2

    @property
    def pair_rank(self) -> int:
        """Rank of the pair.

        Raises:
            ValueError: If the hand is not a pair.
        """
        if not self.is_pair:
            raise ValueError(f"Hand {self} is not a pair.")
        return self.counts.index(2)

    @property
    def is_blackjack(self) -> bool:
        """True for a natural: two cards totalling 21, not from a split.

        Examples:
            >>> hand_from_str('A K').is_blackjack
            True
            >>> hand_from_str('A 5 5').is_blackjack
            False
        """
        return (
            self.split_depth == 0
            and self.num_cards == 2
            and self.counts[RANK_ACE] == 1
            and self.hard_total == 11
        )

    @property
    def from_split(self) -> bool:
        return self.split_depth > 0

    def key(self) -> tuple[tuple[int, ...], int]:
        """Canonical, order-independent memoization key."""
        return (self.counts, self.split_depth)

    def ranks(self) -> tuple[int, ...]:
        """Return the held ranks in ascending order."""
        return tuple(r for r, n in enumerate(self.counts) for _ in range(n))

    def __iter__(self) -> Iterator[int]:
        return iter(self.ranks())

    def __str__(self) -> str:
        return ranks_to_str(self.ranks())


def hand_from_ranks(*ranks: int, split_depth: int = 0) -> Hand:
    """Build a hand from rank indices.

    Examples:
        >>> hand_from_ranks(7, 7).is_pair
        True
    """
    counts = [0] * NUM_RANKS
    for rank in ranks:
        if not 0 <= rank < NUM_RANKS:
            raise ValueError(f"Rank index must be in [0, {NUM_RANKS - 1}], got {rank}.")
        counts[rank] += 1
    return Hand(tuple(counts), split_depth)


def hand_from_str(s: str, split_depth: int = 0) -> Hand:
    """Build a hand from a whitespace-separated rank string, e.g. ``'A 10'``."""
    return hand_from_ranks(*ranks_from_str(s), split_depth=split_depth)


def as_hand(cards: Hand | Iterable[int]) -> Hand:
    """Coerce a Hand or an iterable of rank indices into a Hand."""
    if isinstance(cards, Hand):
        return cards
    return hand_from_ranks(*cards)
