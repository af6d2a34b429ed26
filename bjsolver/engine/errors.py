"""
Error taxonomy for the solver.

Every error is a caller-supplied precondition violation detected at a call
boundary.  They all derive from ValueError so callers that already guard
solver calls with ``except ValueError`` keep working.
"""

from __future__ import annotations


class SolverError(ValueError):
    """Base class for all solver precondition violations."""


class InvalidShoe(SolverError):
    """Shoe counts are negative, malformed, or inconsistent with the deck count."""


class InvalidRemoval(SolverError):
    """A card was removed from a shoe that holds none of that rank."""


class IllegalAction(SolverError):
    """EV was requested for an action that is not legal in the hand state."""


class InvalidRules(SolverError):
    """The rule configuration is contradictory or out of range."""
