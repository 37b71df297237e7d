"""Domain models used by the trade reconciliation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, Tuple


class Side(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: object) -> "Side | None":
        """Map broker vocabulary (``buy``, ``B``, ``SELL`` ...) onto a side."""

        text = str(value or "").strip().lower()
        if text in {"buy", "b"}:
            return cls.BUY
        if text in {"sell", "s"}:
            return cls.SELL
        return None


class PositionStatus(str, Enum):
    OPEN = "Open"
    PARTIAL = "Partial"
    CLOSED = "Closed"


class AccountingMethod(str, Enum):
    CASH = "cash"
    ACCRUAL = "accrual"


@dataclass(frozen=True)
class RawTransaction:
    """A single executed fill, normalized from a broker tradebook row."""

    symbol: str
    date: date
    side: Side
    quantity: float
    price: float
    time: Optional[time] = None
    trade_id: Optional[str] = None
    order_id: Optional[str] = None
    exchange: Optional[str] = None
    source: str = "generic"

    @property
    def timestamp(self) -> datetime:
        return datetime.combine(self.date, self.time or time.min)

    @property
    def signed_quantity(self) -> float:
        return self.quantity if self.side is Side.BUY else -self.quantity

    @property
    def value(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class TradeCycle:
    """Fills of one symbol between two flat positions (or flat and end of data)."""

    symbol: str
    transactions: Tuple[RawTransaction, ...]
    is_open: bool

    @property
    def buys(self) -> Tuple[RawTransaction, ...]:
        return tuple(tx for tx in self.transactions if tx.side is Side.BUY)

    @property
    def sells(self) -> Tuple[RawTransaction, ...]:
        return tuple(tx for tx in self.transactions if tx.side is Side.SELL)

    @property
    def buy_quantity(self) -> float:
        return sum(tx.quantity for tx in self.buys)

    @property
    def sell_quantity(self) -> float:
        return sum(tx.quantity for tx in self.sells)


@dataclass(frozen=True)
class Lot:
    """One entry or exit slot of a trade."""

    price: float
    quantity: float
    date: Optional[date] = None

    @property
    def value(self) -> float:
        return self.price * self.quantity


Slot = Optional[Lot]
# Entries are primary + two pyramids, exits are three slots with the last one
# absorbing any overflow.
EntrySlots = Tuple[Slot, Slot, Slot]
ExitSlots = Tuple[Slot, Slot, Slot]

EMPTY_SLOTS: ExitSlots = (None, None, None)


@dataclass(frozen=True)
class Trade:
    """Canonical journal trade.

    The first block of fields is user or importer supplied. Everything from
    ``avg_entry`` down is derived by :func:`journal_engine.assembler.recompute_trade`
    and is never patched in place.
    """

    id: str
    trade_no: int
    symbol: str
    entry_date: date
    side: Side = Side.BUY
    entries: EntrySlots = EMPTY_SLOTS
    exits: ExitSlots = EMPTY_SLOTS
    cmp: float = 0.0
    sl: float = 0.0
    tsl: float = 0.0
    source: str = "manual"
    buy_tranches: Tuple[RawTransaction, ...] = ()
    sell_tranches: Tuple[RawTransaction, ...] = ()

    avg_entry: float = 0.0
    avg_exit_price: float = 0.0
    total_qty: float = 0.0
    position_size: float = 0.0
    allocation: float = 0.0
    exited_qty: float = 0.0
    open_qty: float = 0.0
    realized_pl: float = 0.0
    unrealized_pl: float = 0.0
    exit_pl: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    stock_move: float = 0.0
    holding_days: int = 0
    status: PositionStatus = PositionStatus.OPEN
    sl_percent: float = 0.0
    reward_risk: float = 0.0
    pf_impact: float = 0.0
    exit_pf_impact: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    cum_pf: float = 0.0

    @property
    def entry_lots(self) -> list[Lot]:
        return [lot for lot in self.entries if lot is not None and lot.quantity > 0]

    @property
    def exit_lots(self) -> list[Lot]:
        return [lot for lot in self.exits if lot is not None and lot.quantity > 0]

    @property
    def cash_pf_impact(self) -> float:
        return sum(self.exit_pf_impact)

    @property
    def last_exit_date(self) -> Optional[date]:
        dates = [lot.date for lot in self.exit_lots if lot.date is not None]
        return max(dates) if dates else None


@dataclass(frozen=True)
class CashBasisExit:
    """Synthetic per-exit view of a trade used for cash-basis attribution."""

    id: str
    parent_id: str
    exit_no: int
    date: date
    quantity: float
    price: float
    pl: float
    pf_impact: float
    trade: Trade

    @property
    def symbol(self) -> str:
        return self.trade.symbol

    @property
    def status(self) -> PositionStatus:
        return self.trade.status


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Capital for one (month, year) as supplied by the portfolio-sizing side."""

    month: str
    year: int
    starting_capital: float
    capital_changes: float = 0.0
    gross_pl: float = 0.0

    @property
    def closing_capital(self) -> float:
        return self.starting_capital + self.capital_changes + self.gross_pl


@dataclass(frozen=True)
class DrawdownPoint:
    trade_id: str
    date: date
    symbol: str
    pf_impact: float
    cum_pf: float
    running_max: float
    drawdown_from_peak: float
    is_new_peak: bool
    commentary: str
    commentary_type: str


@dataclass(frozen=True)
class MonthlyPL:
    month: str
    gross_pl: float
    taxes: float
    net_pl: float
    trade_count: int = 0


@dataclass(frozen=True)
class PortfolioAnalyticsResult:
    drawdown_breakdown: list[DrawdownPoint] = field(default_factory=list)
    max_cum_pf: float = 0.0
    min_cum_pf: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    total_gross_pl: float = 0.0
    total_taxes: float = 0.0
    total_net_pl: float = 0.0
    monthly: list[MonthlyPL] = field(default_factory=list)


__all__ = [
    "AccountingMethod",
    "CashBasisExit",
    "DrawdownPoint",
    "EMPTY_SLOTS",
    "EntrySlots",
    "ExitSlots",
    "Lot",
    "MonthlyPL",
    "PortfolioAnalyticsResult",
    "PortfolioSnapshot",
    "PositionStatus",
    "RawTransaction",
    "Side",
    "Slot",
    "Trade",
    "TradeCycle",
]
