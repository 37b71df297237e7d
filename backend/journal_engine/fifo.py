"""FIFO matching of entry lots against exit lots."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Sequence

from .models import Lot, Side


@dataclass
class _OpenLot:
    """Mutable remainder of an entry lot while matching."""

    index: int
    price: float
    quantity: float


@dataclass(frozen=True)
class FifoMatch:
    entry_index: int
    exit_index: int
    quantity: float
    entry_price: float
    exit_price: float
    pl: float


@dataclass(frozen=True)
class FifoResult:
    matches: tuple[FifoMatch, ...]
    realized_pl: float
    matched_qty: float
    exit_pl: tuple[float, ...]
    exit_quantities: tuple[float, ...] = ()

    @property
    def unmatched_exit_qty(self) -> float:
        return sum(self.exit_quantities) - self.matched_qty


def match_pl(entry_price: float, exit_price: float, quantity: float, side: Side = Side.BUY) -> float:
    if side is Side.BUY:
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def match_fifo(entries: Sequence[Lot], exits: Sequence[Lot], side: Side = Side.BUY) -> FifoResult:
    """Walk both lot lists in order, consuming the smaller remainder each step.

    Exit quantity beyond the total entry quantity is left unmatched and
    contributes nothing to realized P/L. Per-exit P/L is reported in
    ``exit_pl`` aligned with ``exits``.
    """

    open_lots: Deque[_OpenLot] = deque(
        _OpenLot(index=i, price=lot.price, quantity=lot.quantity)
        for i, lot in enumerate(entries)
        if lot.quantity > 0
    )
    matches: List[FifoMatch] = []
    exit_pl = [0.0] * len(exits)

    for exit_index, exit_lot in enumerate(exits):
        remaining = exit_lot.quantity
        while remaining > 0 and open_lots:
            lot = open_lots[0]
            quantity = min(lot.quantity, remaining)
            pl = match_pl(lot.price, exit_lot.price, quantity, side)
            matches.append(
                FifoMatch(
                    entry_index=lot.index,
                    exit_index=exit_index,
                    quantity=quantity,
                    entry_price=lot.price,
                    exit_price=exit_lot.price,
                    pl=pl,
                )
            )
            exit_pl[exit_index] += pl
            lot.quantity -= quantity
            remaining -= quantity
            if lot.quantity <= 0:
                open_lots.popleft()

    return FifoResult(
        matches=tuple(matches),
        realized_pl=sum(match.pl for match in matches),
        matched_qty=sum(match.quantity for match in matches),
        exit_pl=tuple(exit_pl),
        exit_quantities=tuple(lot.quantity for lot in exits),
    )


def unrealized_pl(avg_entry: float, cmp: float, open_qty: float, side: Side = Side.BUY) -> float:
    """Mark-to-market P/L of the open remainder; ``0`` without a price."""

    if not avg_entry or not cmp or not open_qty:
        return 0.0
    return match_pl(avg_entry, cmp, open_qty, side)


__all__ = ["FifoMatch", "FifoResult", "match_fifo", "match_pl", "unrealized_pl"]
