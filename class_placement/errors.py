"""Errors raised by the class placement optimizer."""

from __future__ import annotations

from typing import Any, Optional


class PlacementError(Exception):
    """Base class for all class placement errors."""


class InvalidInput(PlacementError, ValueError):
    """Rosters, class count, weights or options are unusable."""


class DegenerateSearch(PlacementError):
    """The search needs at least two classes to move students between."""


class Cancelled(PlacementError):
    """The search was stopped cooperatively before finishing.

    `result` holds the best `OptimizationResult` found before the stop. It is
    a partial result and must not be presented as a completed optimization.
    """

    def __init__(self, message: str, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result
