"""
Rank constants, encoding, and human-readable I/O helpers.

Rank encoding (integer 0–9):
    0 = A, 1 = 2, 2 = 3, ..., 8 = 9, 9 = any ten-value card (10/J/Q/K)

Suits never influence blackjack value, so the solver only tracks ranks.
Point value of a rank is rank + 1 (Ace = 1, promoted to 11 contextually
by the hand model).  String representations are used exclusively at I/O
boundaries.
"""

from __future__ import annotations

NUM_RANKS: int = 10

RANK_ACE: int = 0
RANK_TEN: int = 9

# Point value lookup: index matches rank.  Ace is stored as 1.
RANK_VALUES: list[int] = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]

RANK_NAMES: list[str] = ['A', '2', '3', '4', '5', '6', '7', '8', '9', '10']

# Cards per rank in a single 52-card deck.
CARDS_PER_DECK: list[int] = [4, 4, 4, 4, 4, 4, 4, 4, 4, 16]

# Accepted aliases for the ten-value rank.
_TEN_ALIASES: frozenset[str] = frozenset({'10', 'T', 'J', 'Q', 'K'})


def rank_value(rank: int) -> int:
    """Return the hard point value of a rank (Ace counts 1).

    Examples:
        >>> rank_value(RANK_ACE)
        1
        >>> rank_value(RANK_TEN)
        10
    """
    return RANK_VALUES[rank]


def rank_to_str(rank: int) -> str:
    """Convert a rank index to its display string.

    Examples:
        >>> rank_to_str(0)
        'A'
        >>> rank_to_str(9)
        '10'
    """
    return RANK_NAMES[rank]


def str_to_rank(s: str) -> int:
    """Parse a rank string to its index.

    Accepts 'A', '2'–'9', and any of '10', 'T', 'J', 'Q', 'K' for the
    ten-value rank.  A trailing suit letter ('C', 'D', 'H', 'S') is
    tolerated so that card strings like 'KS' parse too.

    Raises:
        ValueError: If the string does not name a rank.

    Examples:
        >>> str_to_rank('A')
        0
        >>> str_to_rank('7')
        6
        >>> str_to_rank('QH')
        9
    """
    token = s.strip().upper()
    if token in _TEN_ALIASES:
        return RANK_TEN
    if token in RANK_NAMES:
        return RANK_NAMES.index(token)
    if len(token) >= 2 and token[-1] in 'CDHS':
        return str_to_rank(token[:-1])
    raise ValueError(f"Unknown rank: {s!r}")


def ranks_from_str(s: str) -> tuple[int, ...]:
    """Parse a whitespace-separated list of ranks.

    Examples:
        >>> ranks_from_str('A 10')
        (0, 9)
        >>> ranks_from_str('8 8')
        (7, 7)
    """
    return tuple(str_to_rank(tok) for tok in s.split())


def ranks_to_str(ranks: tuple[int, ...]) -> str:
    """Convert a tuple of ranks to a human-readable string.

    Examples:
        >>> ranks_to_str((0, 9))
        'A 10'
    """
    return ' '.join(rank_to_str(r) for r in ranks)
