# core/errors.py
from __future__ import annotations

from typing import Any, List, Optional


class BacktestError(Exception):
    """Base exception for the backtester."""


class ValidationError(BacktestError, ValueError):
    """
    Bad request shape or range. Raised before any bars are fetched,
    nothing is simulated.
    """

    def __init__(self, message: str, errors: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class DataIntegrityError(BacktestError):
    """A malformed bar was found mid-series. The whole run is aborted."""

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        super().__init__(message)
        self.index = index


class ProviderUnavailableError(BacktestError):
    """The bar source failed. Callers may retry; the engine does not."""


class PersistenceError(BacktestError):
    """Storing a finished result failed. Never fails the computed response."""
