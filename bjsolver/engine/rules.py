"""
Rule configuration, settlement, and payout calculation.

Settlement priority for a finished player hand (highest to lowest):
    1. Player bust (>21)             → player loses 1 unit
    2. Charlie (N cards, not bust)   → player wins 1 unit (when enabled)
    3. Player natural                → push vs dealer natural, else blackjack payout
    4. Dealer natural                → player loses 1 unit
    5. Dealer bust                   → player wins 1 unit
    6. Total comparison              → higher total wins 1 unit, tie pushes

Payout convention (from player's perspective, per unit staked):
    +N  = player wins N units
    -N  = player loses N units
     0  = push (bet returned)

Dealer results are keyed the same way the dealer calculator keys its
distribution: an int final total, ``"bust"``, or ``"blackjack"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from .cards import RANK_ACE, RANK_TEN
from .errors import InvalidRules
from .hand import Hand

BUST: str = "bust"
BLACKJACK: str = "blackjack"

DealerResult = int | str


class Outcome(Enum):
    WIN = auto()
    LOSS = auto()
    PUSH = auto()


class PeekPolicy(Enum):
    """When the dealer checks the hidden card for a natural before play."""

    NO_PEEK = "no_peek"
    UP_ACE = "up_ace"
    UP_ACE_OR_TEN = "up_ace_or_ten"


class DoublePolicy(Enum):
    """Which initial hands may double down."""

    ANY_TWO = "any_two"
    NINE_TEN_ELEVEN = "nine_ten_eleven"
    TEN_ELEVEN = "ten_eleven"


_DOUBLE_TOTALS: dict[DoublePolicy, frozenset[int] | None] = {
    DoublePolicy.ANY_TWO: None,
    DoublePolicy.NINE_TEN_ELEVEN: frozenset({9, 10, 11}),
    DoublePolicy.TEN_ELEVEN: frozenset({10, 11}),
}


# ─── Rules ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Rules:
    """Table rules the solver plays under.

    Attributes:
        deck_count:          Decks in a full shoe.
        dealer_hits_soft17:  True for H17, False for S17.
        blackjack_payout:    Units won by a player natural (1.5 = 3:2).
        double_after_split:  Whether split sub-hands may double.
        resplit_limit:       Extra splits allowed after the first (0 = split once).
        surrender_allowed:   Late surrender on an unsplit initial hand (−0.5).
        peek_policy:         Dealer peek behaviour for naturals.
        double_policy:       Which initial totals may double.
        split_aces_one_card: Split Aces receive one card each and must stand.
        charlie_cards:       Cards that win outright without busting (None = off).
        insurance_payout:    Units won per unit of insurance when the dealer has a natural.
    """

    deck_count: int = 1
    dealer_hits_soft17: bool = False
    blackjack_payout: float = 1.5
    double_after_split: bool = True
    resplit_limit: int = 0
    surrender_allowed: bool = False
    peek_policy: PeekPolicy = PeekPolicy.NO_PEEK
    double_policy: DoublePolicy = DoublePolicy.ANY_TWO
    split_aces_one_card: bool = False
    charlie_cards: int | None = None
    insurance_payout: float = 2.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise InvalidRules if the configuration is contradictory."""
        if not isinstance(self.deck_count, int) or self.deck_count < 1:
            raise InvalidRules(f"deck_count must be a positive int, got {self.deck_count!r}.")
        if self.resplit_limit < 0:
            raise InvalidRules(f"resplit_limit must be >= 0, got {self.resplit_limit}.")
        if self.blackjack_payout < 0:
            raise InvalidRules(f"blackjack_payout must be >= 0, got {self.blackjack_payout}.")
        if self.insurance_payout < 0:
            raise InvalidRules(f"insurance_payout must be >= 0, got {self.insurance_payout}.")
        if self.charlie_cards is not None and self.charlie_cards < 3:
            raise InvalidRules(f"charlie_cards must be >= 3 or None, got {self.charlie_cards}.")
        if not isinstance(self.peek_policy, PeekPolicy):
            raise InvalidRules(f"Unknown peek_policy {self.peek_policy!r}.")
        if not isinstance(self.double_policy, DoublePolicy):
            raise InvalidRules(f"Unknown double_policy {self.double_policy!r}.")

    def hole_excluded(self, up_card: int) -> int | None:
        """Rank the hidden card cannot be once the dealer has peeked, or None.

        Examples:
            >>> Rules(peek_policy=PeekPolicy.UP_ACE).hole_excluded(RANK_ACE)
            9
            >>> Rules(peek_policy=PeekPolicy.UP_ACE).hole_excluded(RANK_TEN) is None
            True
        """
        if up_card == RANK_ACE and self.peek_policy in (
            PeekPolicy.UP_ACE,
            PeekPolicy.UP_ACE_OR_TEN,
        ):
            return RANK_TEN
        if up_card == RANK_TEN and self.peek_policy is PeekPolicy.UP_ACE_OR_TEN:
            return RANK_ACE
        return None

    def double_allowed_for(self, hand: Hand) -> bool:
        """Return True if ``hand``'s total qualifies under the double policy.

        Restricted policies only admit hard totals.
        """
        allowed = _DOUBLE_TOTALS[self.double_policy]
        if allowed is None:
            return True
        return not hand.is_soft and hand.hard_total in allowed

    def charlie_reached(self, hand: Hand) -> bool:
        return (
            self.charlie_cards is not None
            and hand.num_cards >= self.charlie_cards
            and not hand.is_bust
        )


DEFAULT_RULES: Rules = Rules()


# ─── Core settlement function ─────────────────────────────────────────────────


def settle_hand(
    player: Hand,
    dealer_result: DealerResult,
    rules: Rules = DEFAULT_RULES,
) -> tuple[Outcome, float]:
    """Determine the outcome and payout for one finished player hand.

    Args:
        player:        Player's final hand.
        dealer_result: Dealer's final total, ``"bust"``, or ``"blackjack"``.
        rules:         Table rules (blackjack payout, Charlie).

    Returns:
        (Outcome, payout) where payout is per unit staked, player's perspective.
    """
    if player.is_bust:
        return Outcome.LOSS, -1.0

    if rules.charlie_reached(player):
        return Outcome.WIN, 1.0

    if player.is_blackjack:
        if dealer_result == BLACKJACK:
            return Outcome.PUSH, 0.0
        return Outcome.WIN, float(rules.blackjack_payout)

    payout = settle_total(player.best_total, dealer_result)
    if payout > 0:
        return Outcome.WIN, payout
    if payout < 0:
        return Outcome.LOSS, payout
    return Outcome.PUSH, payout


def settle_total(player_total: int, dealer_result: DealerResult) -> float:
    """Payout of a standing non-natural total against one dealer result.

    Examples:
        >>> settle_total(19, 18), settle_total(18, 18), settle_total(21, BLACKJACK)
        (1.0, 0.0, -1.0)
    """
    if dealer_result == BLACKJACK:
        return -1.0
    if dealer_result == BUST or player_total > dealer_result:
        return 1.0
    if player_total < dealer_result:
        return -1.0
    return 0.0


def settle_against_distribution(
    player: Hand,
    distribution: dict[DealerResult, float],
    rules: Rules = DEFAULT_RULES,
) -> float:
    """Expected payout of standing on ``player`` against a dealer distribution.

    Examples:
        >>> from .hand import hand_from_str
        >>> settle_against_distribution(hand_from_str('10 10'), {19: 0.5, 'bust': 0.5})
        1.0
    """
    ev = 0.0
    for result, prob in distribution.items():
        ev += prob * settle_hand(player, result, rules)[1]
    return ev
