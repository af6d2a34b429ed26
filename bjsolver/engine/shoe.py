"""
Shoe model: remaining card counts per rank.

A shoe is an immutable value holding a tuple of 10 counts indexed by rank
(see cards.py).  Removing a card returns a new shoe, so sibling branches of
the solver's recursion can never observe each other's draws.

    counts[0]  = Aces remaining
    counts[9]  = ten-value cards remaining (10/J/Q/K)

The counts tuple doubles as the canonical memoization key: it carries
absolute counts, not ratios, so two shoes share a key only when they are
the same composition.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np

from .cards import CARDS_PER_DECK, NUM_RANKS, rank_to_str
from .errors import InvalidRemoval, InvalidShoe


@dataclass(frozen=True)
class Shoe:
    """Immutable remaining-card composition.

    Attributes:
        counts: Remaining cards per rank, length 10.
        total:  Remaining cards overall (derived).
    """

    counts: tuple[int, ...]
    total: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "total", sum(self.counts))

    def count(self, rank: int) -> int:
        return self.counts[rank]

    def probability(self, rank: int) -> float:
        """Probability that the next card drawn is ``rank``.

        Returns 0.0 for an empty shoe.

        Examples:
            >>> create_shoe(1).probability(9)
            0.3076923076923077
        """
        if self.total == 0:
            return 0.0
        return self.counts[rank] / self.total

    def remove(self, rank: int) -> Shoe:
        """Return a new shoe with one card of ``rank`` removed.

        Raises:
            InvalidRemoval: If no card of that rank remains.
        """
        if self.counts[rank] <= 0:
            raise InvalidRemoval(f"No {rank_to_str(rank)} left in the shoe.")
        counts = list(self.counts)
        counts[rank] -= 1
        return Shoe(tuple(counts))

    def restore(self, rank: int) -> Shoe:
        """Return a new shoe with one card of ``rank`` put back.

        Exact inverse of :meth:`remove`.
        """
        counts = list(self.counts)
        counts[rank] += 1
        return Shoe(tuple(counts))

    def remove_many(self, ranks: Iterable[int]) -> Shoe:
        """Remove every rank in ``ranks`` (with multiplicity)."""
        shoe = self
        for rank in ranks:
            shoe = shoe.remove(rank)
        return shoe

    def as_array(self) -> np.ndarray:
        """Return the counts as an int64 numpy array (a copy)."""
        return np.array(self.counts, dtype=np.int64)

    def __str__(self) -> str:
        body = ", ".join(f"{rank_to_str(r)}:{c}" for r, c in enumerate(self.counts))
        return f"Shoe({body}; total={self.total})"


def full_counts(deck_count: int) -> tuple[int, ...]:
    """Return the per-rank counts of a full shoe of ``deck_count`` decks.

    Examples:
        >>> full_counts(1)
        (4, 4, 4, 4, 4, 4, 4, 4, 4, 16)
    """
    return tuple(c * deck_count for c in CARDS_PER_DECK)


def create_shoe(deck_count: int = 1) -> Shoe:
    """Create a full shoe of ``deck_count`` 52-card decks.

    Raises:
        InvalidShoe: If ``deck_count`` is less than 1.

    Examples:
        >>> create_shoe(6).total
        312
    """
    if deck_count < 1:
        raise InvalidShoe(f"deck_count must be >= 1, got {deck_count}.")
    return Shoe(full_counts(deck_count))


def shoe_from_counts(
    counts: Sequence[int] | np.ndarray,
    deck_count: int | None = None,
) -> Shoe:
    """Build a validated shoe from raw per-rank counts.

    Args:
        counts:     10 non-negative integers indexed by rank.
        deck_count: If given, each count must not exceed the full-shoe count
                    for that rank.

    Raises:
        InvalidShoe: On wrong length, non-integer, negative, or over-full counts.
    """
    arr = np.asarray(counts)
    if arr.shape != (NUM_RANKS,):
        raise InvalidShoe(f"Expected {NUM_RANKS} rank counts, got shape {arr.shape}.")
    if not np.issubdtype(arr.dtype, np.integer):
        raise InvalidShoe(f"Shoe counts must be integers, got dtype {arr.dtype}.")
    if (arr < 0).any():
        raise InvalidShoe(f"Shoe counts must be non-negative, got {arr.tolist()}.")
    if deck_count is not None:
        if deck_count < 1:
            raise InvalidShoe(f"deck_count must be >= 1, got {deck_count}.")
        limit = np.array(full_counts(deck_count))
        if (arr > limit).any():
            raise InvalidShoe(
                f"Shoe counts {arr.tolist()} exceed a {deck_count}-deck shoe {limit.tolist()}."
            )
    return Shoe(tuple(int(c) for c in arr))


def build_shoe_from_hands(deck_count: int, *hands: Iterable[int]) -> Shoe:
    """Create a full shoe with the cards of the given hands already removed.

    Examples:
        >>> build_shoe_from_hands(1, (7, 7), (5,)).total
        49
    """
    shoe = create_shoe(deck_count)
    for hand in hands:
        shoe = shoe.remove_many(hand)
    return shoe


def draw_probability(shoe: Shoe, rank: int, hole_excluded: int | None = None) -> float:
    """Probability that the player's next card is ``rank``.

    The dealer's hidden card is still inside ``shoe``.  When the dealer has
    peeked and shown no natural, the hidden card is known not to be
    ``hole_excluded``; by exchangeability the player's next card is then drawn
    from the shoe minus a hidden card that is uniform over the other ranks.

    Reduces to ``shoe.probability(rank)`` when ``hole_excluded`` is None.
    Returns 0.0 when the shoe cannot supply both the hidden card and a draw.
    """
    if hole_excluded is None:
        return shoe.probability(rank)

    total = shoe.total
    eligible_hole = total - shoe.counts[hole_excluded]
    if total <= 1 or eligible_hole <= 0:
        return 0.0

    n = shoe.counts[rank]
    p_hole_is_rank = 0.0 if rank == hole_excluded else n / eligible_hole
    return (p_hole_is_rank * (n - 1) + (1.0 - p_hole_is_rank) * n) / (total - 1)
