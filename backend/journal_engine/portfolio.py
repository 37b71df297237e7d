"""Portfolio-size lookups keyed by (month, year)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol, Tuple

from .models import PortfolioSnapshot

DEFAULT_PORTFOLIO_SIZE = 100_000.0

MONTH_KEYS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_MONTH_LOOKUP = {name.lower(): name for name in MONTH_KEYS}
_MONTH_LOOKUP.update({"sept": "Sep"})


class PortfolioSizeLookup(Protocol):
    """Capital available at the start of a month."""

    def __call__(self, month: str, year: int) -> float:
        ...


def month_key(value: date) -> str:
    return MONTH_KEYS[value.month - 1]


def normalize_month(name: str) -> str:
    """Map ``january``/``JAN``/``Sept`` style names onto ``Jan``..``Dec``."""

    text = name.strip().lower()
    if text in _MONTH_LOOKUP:
        return _MONTH_LOOKUP[text]
    if text[:3] in _MONTH_LOOKUP:
        return _MONTH_LOOKUP[text[:3]]
    raise ValueError(f"Unknown month name: {name!r}")


@dataclass
class StaticPortfolioSizes:
    """In-memory lookup for tests, scripts and API requests."""

    sizes: Dict[Tuple[str, int], float] = field(default_factory=dict)
    default: float = DEFAULT_PORTFOLIO_SIZE

    @classmethod
    def from_snapshots(
        cls, snapshots: Iterable[PortfolioSnapshot], default: float = DEFAULT_PORTFOLIO_SIZE
    ) -> "StaticPortfolioSizes":
        sizes = {
            (normalize_month(snap.month), snap.year): snap.starting_capital + snap.capital_changes
            for snap in snapshots
        }
        return cls(sizes=sizes, default=default)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, float], default: float = DEFAULT_PORTFOLIO_SIZE
    ) -> "StaticPortfolioSizes":
        """Build from ``{"Jan 2024": 150000, ...}`` style keys."""

        sizes: Dict[Tuple[str, int], float] = {}
        for key, value in mapping.items():
            month, _, year = key.strip().partition(" ")
            sizes[(normalize_month(month), int(year))] = float(value)
        return cls(sizes=sizes, default=default)

    def __call__(self, month: str, year: int) -> float:
        return self.sizes.get((normalize_month(month), year), self.default)


def resolve_portfolio_size(
    lookup: Optional[PortfolioSizeLookup | Callable[[str, int], float]],
    when: Optional[date],
    default: float = DEFAULT_PORTFOLIO_SIZE,
) -> float:
    """Capital for the month of ``when``, falling back to ``default``."""

    if lookup is None or when is None:
        return default
    size = lookup(month_key(when), when.year)
    return size if size and size > 0 else default


__all__ = [
    "DEFAULT_PORTFOLIO_SIZE",
    "MONTH_KEYS",
    "PortfolioSizeLookup",
    "StaticPortfolioSizes",
    "month_key",
    "normalize_month",
    "resolve_portfolio_size",
]
