"""Exceptions raised by the reconciliation engine."""
from __future__ import annotations

from typing import Mapping


class JournalEngineError(Exception):
    """Base class for engine failures surfaced to callers."""


class UnrecognizedFormatError(JournalEngineError):
    """No broker schema scored above its detection thresholds."""

    def __init__(self, scores: Mapping[str, tuple[int, int]] | None = None):
        self.scores = dict(scores or {})
        detail = ", ".join(
            f"{name}: unique={unique} required={required}"
            for name, (unique, required) in self.scores.items()
        )
        message = "Unrecognized tradebook format"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ColumnMappingError(JournalEngineError):
    """A generic CSV column mapping is missing required canonical fields."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Column mapping is missing required fields: {', '.join(missing)}")


class StaleResultError(JournalEngineError):
    """The requested background run was superseded by a newer submission."""


__all__ = [
    "ColumnMappingError",
    "JournalEngineError",
    "StaleResultError",
    "UnrecognizedFormatError",
]
