"""Trading-cycle detection.

A cycle is the run of fills for one symbol between two flat positions. The
detector is a small reducer: the state is the running position and the
buffered fills, and :func:`step` folds one transaction into it. Symbols are
processed independently so nothing is shared between streams.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from .models import RawTransaction, Side, TradeCycle

logger = logging.getLogger(__name__)

# Fractional quantities come from float parsing; treat dust as flat.
QTY_EPSILON = 1e-9


@dataclass(frozen=True)
class CycleState:
    running_position: float = 0.0
    buffer: tuple[RawTransaction, ...] = ()


@dataclass(frozen=True)
class StepResult:
    state: CycleState
    closed: Optional[TradeCycle] = None
    orphan: Optional[RawTransaction] = None


@dataclass(frozen=True)
class CycleDetection:
    cycles: tuple[TradeCycle, ...]
    orphans: tuple[RawTransaction, ...] = ()


def step(state: CycleState, tx: RawTransaction) -> StepResult:
    """Apply one transaction to the reducer state.

    A sell larger than the open position is split: the covering part closes
    the cycle and the excess is returned as an orphan, as is any sell that
    arrives while flat.
    """

    if tx.side is Side.BUY:
        return StepResult(
            state=CycleState(state.running_position + tx.quantity, state.buffer + (tx,)),
        )

    if state.running_position <= QTY_EPSILON:
        return StepResult(state=state, orphan=tx)

    excess = tx.quantity - state.running_position
    if excess > QTY_EPSILON:
        covering = replace(tx, quantity=state.running_position)
        closed = TradeCycle(symbol=tx.symbol, transactions=state.buffer + (covering,), is_open=False)
        return StepResult(state=CycleState(), closed=closed, orphan=replace(tx, quantity=excess))

    position = state.running_position - tx.quantity
    buffer = state.buffer + (tx,)
    if abs(position) <= QTY_EPSILON:
        return StepResult(state=CycleState(), closed=TradeCycle(symbol=tx.symbol, transactions=buffer, is_open=False))
    return StepResult(state=CycleState(position, buffer))


def sort_transactions(transactions: Iterable[RawTransaction]) -> List[RawTransaction]:
    """Stable chronological order; ties keep their original row order."""

    return sorted(transactions, key=lambda tx: tx.timestamp)


def detect_cycles(transactions: Sequence[RawTransaction]) -> CycleDetection:
    """Split one symbol's fills into closed cycles and a trailing open cycle."""

    state = CycleState()
    cycles: List[TradeCycle] = []
    orphans: List[RawTransaction] = []
    for tx in sort_transactions(transactions):
        result = step(state, tx)
        state = result.state
        if result.closed is not None:
            cycles.append(result.closed)
        if result.orphan is not None:
            orphans.append(result.orphan)

    if state.buffer:
        cycles.append(TradeCycle(symbol=state.buffer[0].symbol, transactions=state.buffer, is_open=True))

    kept = [cycle for cycle in cycles if cycle.buys]
    if orphans:
        logger.debug("Discarded %s orphan sell fills", len(orphans))
    return CycleDetection(cycles=tuple(kept), orphans=tuple(orphans))


def group_by_symbol(transactions: Iterable[RawTransaction]) -> Dict[str, List[RawTransaction]]:
    grouped: Dict[str, List[RawTransaction]] = {}
    for tx in transactions:
        grouped.setdefault(tx.symbol, []).append(tx)
    return grouped


def detect_all(transactions: Iterable[RawTransaction]) -> Dict[str, CycleDetection]:
    return {symbol: detect_cycles(items) for symbol, items in group_by_symbol(transactions).items()}


__all__ = [
    "CycleDetection",
    "CycleState",
    "StepResult",
    "detect_all",
    "detect_cycles",
    "group_by_symbol",
    "sort_transactions",
    "step",
]
