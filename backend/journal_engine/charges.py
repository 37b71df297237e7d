"""Zerodha P&L statement charges parser.

The statement is a CSV with a preamble (client id, statement range), a
summary block and an ``Account Head,Amount`` section listing each charge.
The parsed total is spread evenly over the months of the statement range to
produce the ``taxes_by_month`` input of the analytics engine.
"""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, fields
from datetime import date
from typing import Dict, List, Optional

from .parsing import parse_number
from .portfolio import month_key

logger = logging.getLogger(__name__)

_RANGE = re.compile(r"from (\d{4}-\d{2}-\d{2}) to (\d{4}-\d{2}-\d{2})", re.IGNORECASE)

# Account head substring -> breakdown field, checked in order.
ACCOUNT_HEADS = (
    ("brokerage", "brokerage"),
    ("exchange transaction charges", "exchange_transaction_charges"),
    ("clearing charges", "clearing_charges"),
    ("central gst", "central_gst"),
    ("state gst", "state_gst"),
    ("integrated gst", "integrated_gst"),
    ("securities transaction tax", "securities_transaction_tax"),
    ("sebi turnover fees", "sebi_turnover_fees"),
    ("stamp duty", "stamp_duty"),
    ("ipft", "ipft"),
)


@dataclass(frozen=True)
class ChargesBreakdown:
    brokerage: float = 0.0
    exchange_transaction_charges: float = 0.0
    clearing_charges: float = 0.0
    central_gst: float = 0.0
    state_gst: float = 0.0
    integrated_gst: float = 0.0
    securities_transaction_tax: float = 0.0
    sebi_turnover_fees: float = 0.0
    stamp_duty: float = 0.0
    ipft: float = 0.0
    total: float = 0.0
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    client_id: str = ""

    def components(self) -> Dict[str, float]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in {"total", "date_from", "date_to", "client_id"}
        }


def _rows(text: str) -> List[List[str]]:
    return [[cell.strip() for cell in row] for row in csv.reader(io.StringIO(text))]


def _column(row: List[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def is_zerodha_pnl_statement(text: str) -> bool:
    """At least two of the statement's landmark lines must be present."""

    lowered = text.lower()
    indicators = (
        "client id" in lowered,
        "p&l statement for equity" in lowered,
        "charges" in lowered or "account head" in lowered,
        "summary" in lowered,
    )
    return sum(indicators) >= 2


def parse_zerodha_charges(text: str) -> Optional[ChargesBreakdown]:
    """Extract the charges breakdown, or ``None`` without an account-head section."""

    rows = _rows(text)
    client_id = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    total = 0.0
    for row in rows:
        joined = ",".join(row)
        lowered = joined.lower()
        if not client_id and "client id" in lowered:
            client_id = _column(row, 2)
        match = _RANGE.search(joined)
        if match and date_from is None:
            date_from = date.fromisoformat(match.group(1))
            date_to = date.fromisoformat(match.group(2))
        if not total and _column(row, 1).lower() == "charges" and parse_number(_column(row, 2)) > 0:
            total = parse_number(_column(row, 2))

    start = next(
        (
            index
            for index, row in enumerate(rows)
            if _column(row, 1).lower() == "account head" and _column(row, 2).lower() == "amount"
        ),
        None,
    )
    if start is None:
        logger.warning("Zerodha P&L statement has no 'Account Head,Amount' section")
        return None

    values: Dict[str, float] = {}
    for row in rows[start + 1 :]:
        if not any(row) or any("symbol" in cell.lower() for cell in row):
            break
        head = _column(row, 1).lower()
        amount_text = _column(row, 2)
        if not head or not amount_text:
            continue
        for needle, name in ACCOUNT_HEADS:
            if needle in head:
                values[name] = parse_number(amount_text)
                break

    return ChargesBreakdown(
        total=total,
        date_from=date_from,
        date_to=date_to,
        client_id=client_id,
        **values,
    )


def statement_months(date_from: date, date_to: date) -> List[date]:
    months: List[date] = []
    current = date(date_from.year, date_from.month, 1)
    while current <= date_to:
        months.append(current)
        current = date(current.year + (current.month == 12), current.month % 12 + 1, 1)
    return months


def distribute_charges_by_month(charges: ChargesBreakdown, year: Optional[int] = None) -> Dict[str, float]:
    """Spread the statement total evenly over its months as ``{"Jan": amount}``."""

    if charges.date_from is None or charges.date_to is None:
        return {}
    months = [month for month in statement_months(charges.date_from, charges.date_to) if year is None or month.year == year]
    if not months:
        return {}
    share = charges.total / len(months)
    taxes: Dict[str, float] = {}
    for month in months:
        key = month_key(month)
        taxes[key] = taxes.get(key, 0.0) + share
    return taxes


__all__ = [
    "ChargesBreakdown",
    "distribute_charges_by_month",
    "is_zerodha_pnl_statement",
    "parse_zerodha_charges",
    "statement_months",
]
