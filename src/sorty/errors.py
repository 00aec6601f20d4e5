"""Exception hierarchy shared across the Sorty core."""

from __future__ import annotations

from typing import Literal

ParseErrorCode = Literal["invalid_json", "empty_response"]
ResolutionErrorCode = Literal["root_not_writable", "path_escape_attempt"]


class SortyError(Exception):
    """Base exception for Sorty operations."""


class ParseError(SortyError):
    """Raised when plan text cannot be turned into an organization plan.

    Attributes:
        code: Machine-readable reason (``invalid_json`` or ``empty_response``).
    """

    def __init__(self, code: ParseErrorCode, message: str) -> None:
        super().__init__(message)
        self.code: ParseErrorCode = code


class ResolutionError(SortyError):
    """Raised when a plan cannot be resolved against the target root.

    Nothing has been executed when this error surfaces.

    Attributes:
        code: Machine-readable reason (``root_not_writable`` or ``path_escape_attempt``).
    """

    def __init__(self, code: ResolutionErrorCode, message: str) -> None:
        super().__init__(message)
        self.code: ResolutionErrorCode = code


class RootBusyError(SortyError):
    """Raised when another run already holds the lock for a root."""


__all__ = [
    "SortyError",
    "ParseError",
    "ParseErrorCode",
    "ResolutionError",
    "ResolutionErrorCode",
    "RootBusyError",
]
