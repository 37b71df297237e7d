"""Schemas for tradebook import, reconciliation and analytics."""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, Field

from journal_engine.models import PositionStatus, Side
from journal_engine.normalizers import BrokerFormat
from journal_engine.parsing import DateFormat


class LotSchema(BaseModel):
    price: float = Field(..., ge=0)
    quantity: float = Field(..., ge=0)
    date: dt.date | None = None


class TransactionSchema(BaseModel):
    symbol: str
    date: dt.date
    side: Side
    quantity: float
    price: float
    time: dt.time | None = None
    trade_id: str | None = None
    order_id: str | None = None
    exchange: str | None = None
    source: str = "generic"


class PortfolioContext(BaseModel):
    """Accounting basis and capital context shared by every computation."""

    accounting_method: Literal["cash", "accrual"] | None = None
    portfolio_sizes: dict[str, float] = Field(
        default_factory=dict,
        description='Starting capital keyed by "Mon YYYY".',
        examples=[{"Jan 2024": 150000, "Feb 2024": 160000}],
    )
    default_portfolio_size: float | None = Field(default=None, gt=0)
    taxes_by_month: dict[str, float] = Field(default_factory=dict, examples=[{"Jan": 1250.5}])
    year: int | None = None
    as_of: dt.date | None = Field(default=None, description="Reference date for open holding days.")


class DetectRequest(BaseModel):
    headers: list[str]


class DetectResponse(BaseModel):
    format: BrokerFormat
    confidence: float
    recognized: bool
    scores: dict[str, tuple[int, int]]
    suggested_mapping: dict[str, str]


class ImportRequest(PortfolioContext):
    headers: list[str]
    rows: list[list[Any]]
    broker: BrokerFormat | None = None
    column_mapping: dict[str, str] | None = None
    date_format: DateFormat | None = None
    default_year: int | None = None
    cmp: dict[str, float] = Field(default_factory=dict, description="Current market price by symbol.")

    class Config:
        json_schema_extra = {
            "example": {
                "headers": ["symbol", "isin", "trade_date", "trade_type", "quantity", "price", "trade_id", "order_id"],
                "rows": [["INFY", "INE009A01021", "2024-01-02", "buy", "10", "1500", "T1", "O1"]],
                "accounting_method": "accrual",
            }
        }


class TradeInputSchema(BaseModel):
    id: str
    trade_no: int = Field(..., ge=0)
    symbol: str
    entry_date: dt.date
    side: Side = Side.BUY
    entries: list[LotSchema] = Field(..., min_length=1, max_length=3)
    exits: list[LotSchema] = Field(default_factory=list, max_length=3)
    cmp: float = 0.0
    sl: float = 0.0
    tsl: float = 0.0


class AnalyticsRequest(PortfolioContext):
    trades: list[TradeInputSchema]


class TradeSchema(BaseModel):
    id: str
    trade_no: int
    symbol: str
    entry_date: dt.date
    side: Side
    entries: list[LotSchema | None]
    exits: list[LotSchema | None]
    cmp: float
    sl: float
    tsl: float
    source: str
    buy_tranches: list[TransactionSchema] = Field(default_factory=list)
    sell_tranches: list[TransactionSchema] = Field(default_factory=list)
    avg_entry: float
    avg_exit_price: float
    total_qty: float
    position_size: float
    allocation: float
    exited_qty: float
    open_qty: float
    realized_pl: float
    unrealized_pl: float
    exit_pl: list[float]
    stock_move: float
    holding_days: int
    status: PositionStatus
    sl_percent: float
    reward_risk: float
    pf_impact: float
    cash_pf_impact: float
    cum_pf: float


class CashBasisExitSchema(BaseModel):
    id: str
    parent_id: str
    exit_no: int
    date: dt.date
    quantity: float
    price: float
    pl: float
    pf_impact: float


class DrawdownPointSchema(BaseModel):
    trade_id: str
    date: dt.date
    symbol: str
    pf_impact: float
    cum_pf: float
    running_max: float
    drawdown_from_peak: float
    is_new_peak: bool
    commentary: str
    commentary_type: str


class MonthlyPLSchema(BaseModel):
    month: str
    gross_pl: float
    taxes: float
    net_pl: float
    trade_count: int


class AnalyticsSchema(BaseModel):
    drawdown_breakdown: list[DrawdownPointSchema]
    max_cum_pf: float
    min_cum_pf: float
    max_drawdown: float
    current_drawdown: float
    total_gross_pl: float
    total_taxes: float
    total_net_pl: float
    monthly: list[MonthlyPLSchema]


class ReconciliationResponse(BaseModel):
    broker: BrokerFormat | None = None
    trades: list[TradeSchema]
    cash_exits: list[CashBasisExitSchema] = Field(default_factory=list)
    analytics: AnalyticsSchema
    open_positions: int = 0
    rejected_rows: int = 0
    orphan_fills: int = 0
    ambiguous_dates: int = 0


class ChargesRequest(BaseModel):
    statement: str = Field(..., description="Raw Zerodha P&L statement CSV text.")
    year: int | None = None


class ChargesResponse(BaseModel):
    brokerage: float
    exchange_transaction_charges: float
    clearing_charges: float
    central_gst: float
    state_gst: float
    integrated_gst: float
    securities_transaction_tax: float
    sebi_turnover_fees: float
    stamp_duty: float
    ipft: float
    total: float
    date_from: dt.date | None = None
    date_to: dt.date | None = None
    client_id: str = ""
    taxes_by_month: dict[str, float] = Field(default_factory=dict)


__all__ = [
    "AnalyticsRequest",
    "AnalyticsSchema",
    "CashBasisExitSchema",
    "ChargesRequest",
    "ChargesResponse",
    "DetectRequest",
    "DetectResponse",
    "DrawdownPointSchema",
    "ImportRequest",
    "LotSchema",
    "MonthlyPLSchema",
    "PortfolioContext",
    "ReconciliationResponse",
    "TradeInputSchema",
    "TradeSchema",
    "TransactionSchema",
]
