"""Error types raised by the suggestion index."""

from __future__ import annotations


class SuggestError(Exception):
    """Base class for suggestion index failures."""


class InvalidInputError(SuggestError, ValueError):
    """Rejected item, scope, or count; raised before the store is touched."""


class StoreUnavailableError(SuggestError):
    """The sorted-set store could not be reached."""
