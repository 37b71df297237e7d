"""Collapse a cycle's fills into the journal's fixed three-slot shape."""
from __future__ import annotations

from typing import Sequence

from .cycles import sort_transactions
from .models import EMPTY_SLOTS, ExitSlots, Lot, RawTransaction

SLOT_COUNT = 3


def merge_lots(lots: Sequence[Lot]) -> Lot:
    """Quantity-weighted merge dated by the last lot."""

    quantity = sum(lot.quantity for lot in lots)
    value = sum(lot.quantity * lot.price for lot in lots)
    price = value / quantity if quantity else 0.0
    return Lot(price=price, quantity=quantity, date=lots[-1].date if lots else None)


def consolidate_lots(lots: Sequence[Lot]) -> ExitSlots:
    """Keep the first two lots verbatim and merge the rest into slot three.

    ``lots`` must already be in chronological order.
    """

    lots = [lot for lot in lots if lot.quantity > 0]
    if len(lots) <= SLOT_COUNT:
        padded = list(lots) + [None] * (SLOT_COUNT - len(lots))
        return (padded[0], padded[1], padded[2])
    return (lots[0], lots[1], merge_lots(lots[SLOT_COUNT - 1 :]))


def _as_lots(transactions: Sequence[RawTransaction]) -> list[Lot]:
    return [Lot(price=tx.price, quantity=tx.quantity, date=tx.date) for tx in sort_transactions(transactions)]


def consolidate_exits(sells: Sequence[RawTransaction]) -> ExitSlots:
    if not sells:
        return EMPTY_SLOTS
    return consolidate_lots(_as_lots(sells))


def consolidate_entries(buys: Sequence[RawTransaction]) -> ExitSlots:
    """Initial entry plus two pyramid slots, merged the same way as exits."""

    if not buys:
        return EMPTY_SLOTS
    return consolidate_lots(_as_lots(buys))


__all__ = [
    "SLOT_COUNT",
    "consolidate_entries",
    "consolidate_exits",
    "consolidate_lots",
    "merge_lots",
]
