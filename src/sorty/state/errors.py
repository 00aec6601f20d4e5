"""State management errors."""

from sorty.errors import SortyError


class StateError(SortyError):
    """Base exception for history and ledger persistence."""


class MissingStateError(StateError):
    """Raised when a requested history entry or ledger does not exist."""
