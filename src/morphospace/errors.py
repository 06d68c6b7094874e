"""
Exceptions and warnings raised by morphospace.

Errors that describe bad input also subclass ``ValueError`` so callers that
catch ``ValueError`` around numerical code keep working.
"""

from __future__ import annotations


class MorphospaceError(Exception):
    """Base class for morphospace errors."""


class ShapeMismatchError(MorphospaceError, ValueError):
    """Landmark configurations or matrices have incompatible shapes."""


class MissingDataError(MorphospaceError, ValueError):
    """An operation that needs complete data received missing values."""


class IncompleteDistanceError(MorphospaceError, ValueError):
    """A distance matrix has undefined pairwise entries."""

    def __init__(self, message: str, pairs: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.pairs = pairs or []


class NewickParseError(MorphospaceError, ValueError):
    """A Newick string could not be parsed."""

    def __init__(self, message: str, position: int | None = None):
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
        self.position = position


class ConvergenceWarning(UserWarning):
    """An iterative fit stopped before reaching its tolerance."""
