"""Cash and accrual projections of the trade list.

Accrual basis keeps one record per trade dated by its entry. Cash basis
splits every realized trade into one :class:`CashBasisExit` per filled exit
slot, dated by that exit and carrying only that exit's share of the P/L.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Sequence, Union

from .models import CashBasisExit, PositionStatus, Trade
from .portfolio import month_key

EXIT_ID_SEPARATOR = "_exit_"

Record = Union[Trade, CashBasisExit]


def is_realized(trade: Trade) -> bool:
    return trade.status in (PositionStatus.CLOSED, PositionStatus.PARTIAL)


def cash_exits(trade: Trade) -> List[CashBasisExit]:
    """One synthetic record per non-empty exit slot, numbered from 1."""

    records: List[CashBasisExit] = []
    for index, slot in enumerate(trade.exits):
        if slot is None or slot.quantity <= 0:
            continue
        exit_no = len(records) + 1
        records.append(
            CashBasisExit(
                id=f"{trade.id}{EXIT_ID_SEPARATOR}{exit_no}",
                parent_id=trade.id,
                exit_no=exit_no,
                date=slot.date or trade.entry_date,
                quantity=slot.quantity,
                price=slot.price,
                pl=trade.exit_pl[index],
                pf_impact=trade.exit_pf_impact[index],
                trade=trade,
            )
        )
    return records


def expand_cash_basis(trades: Iterable[Trade]) -> List[Record]:
    expanded: List[Record] = []
    for trade in trades:
        if is_realized(trade) and trade.exit_lots:
            expanded.extend(cash_exits(trade))
        else:
            expanded.append(trade)
    return expanded


def project(trades: Sequence[Trade], use_cash_basis: bool = False) -> List[Record]:
    """Accrual view (the trades themselves) or the cash-basis expansion."""

    if use_cash_basis:
        return expand_cash_basis(trades)
    return list(trades)


def original_id(record_id: str) -> str:
    return record_id.split(EXIT_ID_SEPARATOR)[0]


def deduplicate_for_exposure(records: Iterable[Record]) -> List[Record]:
    """Collapse cash-basis expansions back to one record per original trade.

    The first occurrence wins, so open-risk counts see each trade once.
    """

    seen: set[str] = set()
    unique: List[Record] = []
    for record in records:
        key = original_id(record.id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def accounting_date(record: Record, use_cash_basis: bool = False) -> date:
    if isinstance(record, CashBasisExit):
        return record.date
    if use_cash_basis:
        exit_dates = [lot.date for lot in record.exit_lots if lot.date is not None]
        if exit_dates:
            return exit_dates[0]
    return record.entry_date


def accounting_pl(record: Record) -> float:
    if isinstance(record, CashBasisExit):
        return record.pl
    return record.realized_pl


def accounting_pf_impact(record: Record, use_cash_basis: bool = False) -> float:
    if isinstance(record, CashBasisExit):
        return record.pf_impact
    return record.cash_pf_impact if use_cash_basis else record.pf_impact


def group_by_month(trades: Iterable[Trade], use_cash_basis: bool = False) -> Dict[str, List[Record]]:
    """Bucket records under ``"Mon YYYY"`` keys for the chosen basis.

    Under cash basis only realized exits are bucketed; open trades have no
    cash event yet.
    """

    grouped: Dict[str, List[Record]] = {}
    records: Iterable[Record]
    if use_cash_basis:
        records = [record for trade in trades if is_realized(trade) for record in cash_exits(trade)]
    else:
        records = trades
    for record in records:
        when = accounting_date(record, use_cash_basis)
        grouped.setdefault(f"{month_key(when)} {when.year}", []).append(record)
    return grouped


def chronological_key(trade: Trade) -> tuple[date, int, str]:
    """Entry date first; the trade number breaks same-day ties."""

    return (trade.entry_date, trade.trade_no, trade.id)


def apply_cumulative_pf(trades: Sequence[Trade], use_cash_basis: bool = False) -> List[Trade]:
    """Set ``cum_pf`` as the running sum of realized PF impact.

    Trades are walked in chronological order; open trades carry the running
    value without adding to it. The returned list keeps the input order.
    """

    running = 0.0
    cumulative: Dict[str, float] = {}
    for trade in sorted(trades, key=chronological_key):
        if trade.status is not PositionStatus.OPEN:
            running += trade.cash_pf_impact if use_cash_basis else trade.pf_impact
        cumulative[trade.id] = running
    return [replace(trade, cum_pf=cumulative[trade.id]) for trade in trades]


__all__ = [
    "EXIT_ID_SEPARATOR",
    "Record",
    "accounting_date",
    "accounting_pf_impact",
    "accounting_pl",
    "apply_cumulative_pf",
    "cash_exits",
    "chronological_key",
    "deduplicate_for_exposure",
    "expand_cash_basis",
    "group_by_month",
    "is_realized",
    "original_id",
    "project",
]
