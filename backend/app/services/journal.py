"""Glue between the HTTP schemas and the reconciliation engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import IO, Any, Sequence

import pandas as pd

from app.config import AppSettings
from app.schemas import (
    AnalyticsRequest,
    AnalyticsSchema,
    CashBasisExitSchema,
    ChargesResponse,
    DetectResponse,
    ImportRequest,
    LotSchema,
    PortfolioContext,
    ReconciliationResponse,
    TradeInputSchema,
    TradeSchema,
)
from journal_engine.accounting import apply_cumulative_pf, project
from journal_engine.analytics import compute_portfolio_analytics
from journal_engine.assembler import recompute_trade
from journal_engine.charges import distribute_charges_by_month, parse_zerodha_charges
from journal_engine.models import CashBasisExit, Lot, PortfolioAnalyticsResult, Trade
from journal_engine.normalizers import NormalizationOptions, detect_format, normalize, suggest_column_mapping
from journal_engine.pipeline import PipelineOptions, PipelineResult, run_pipeline_async
from journal_engine.portfolio import StaticPortfolioSizes

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def detect(headers: Sequence[str]) -> DetectResponse:
    detection = detect_format(headers)
    return DetectResponse(
        format=detection.format,
        confidence=detection.confidence,
        recognized=detection.recognized,
        scores=detection.scores,
        suggested_mapping=suggest_column_mapping(headers),
    )


def _portfolio(context: PortfolioContext, settings: AppSettings) -> StaticPortfolioSizes:
    default = context.default_portfolio_size or settings.default_portfolio_size
    return StaticPortfolioSizes.from_mapping(context.portfolio_sizes, default=default)


def _pipeline_options(context: PortfolioContext, settings: AppSettings, **extra: Any) -> PipelineOptions:
    method = context.accounting_method or settings.accounting_method
    return PipelineOptions(
        as_of=context.as_of or date.today(),
        use_cash_basis=method == "cash",
        default_portfolio_size=context.default_portfolio_size or settings.default_portfolio_size,
        taxes_by_month=dict(context.taxes_by_month),
        year=context.year,
        chunk_size=settings.chunk_size,
        **extra,
    )


def trade_to_schema(trade: Trade) -> TradeSchema:
    payload = asdict(trade)
    payload["cash_pf_impact"] = trade.cash_pf_impact
    return TradeSchema.model_validate(payload)


def analytics_to_schema(analytics: PortfolioAnalyticsResult) -> AnalyticsSchema:
    return AnalyticsSchema.model_validate(asdict(analytics))


def _cash_exits(records: Sequence[Any]) -> list[CashBasisExitSchema]:
    return [
        CashBasisExitSchema(
            id=record.id,
            parent_id=record.parent_id,
            exit_no=record.exit_no,
            date=record.date,
            quantity=record.quantity,
            price=record.price,
            pl=record.pl,
            pf_impact=record.pf_impact,
        )
        for record in records
        if isinstance(record, CashBasisExit)
    ]


def result_to_response(result: PipelineResult) -> ReconciliationResponse:
    return ReconciliationResponse(
        broker=result.broker,
        trades=[trade_to_schema(trade) for trade in result.trades],
        cash_exits=_cash_exits(result.records),
        analytics=analytics_to_schema(result.analytics),
        open_positions=result.open_positions,
        rejected_rows=result.rejected_rows,
        orphan_fills=result.orphan_fills,
        ambiguous_dates=result.ambiguous_dates,
    )


async def import_tradebook(request: ImportRequest, settings: AppSettings) -> ReconciliationResponse:
    """Normalize the uploaded rows and reconcile them off the event loop."""

    normalization_options = NormalizationOptions(
        date_format=request.date_format or settings.date_format,
        default_year=request.default_year,
    )
    normalized = await asyncio.to_thread(
        normalize,
        request.headers,
        request.rows,
        broker=request.broker,
        column_mapping=request.column_mapping,
        options=normalization_options,
    )
    options = _pipeline_options(request, settings, cmp_by_symbol={k.upper(): v for k, v in request.cmp.items()})
    result = await run_pipeline_async(
        normalized.transactions,
        options,
        portfolio_size=_portfolio(request, settings),
        normalization=normalized,
    )
    return result_to_response(result)


def _slots(lots: Sequence[LotSchema]) -> tuple[Lot | None, Lot | None, Lot | None]:
    padded: list[Lot | None] = [Lot(price=lot.price, quantity=lot.quantity, date=lot.date) for lot in lots]
    padded += [None] * (3 - len(padded))
    return (padded[0], padded[1], padded[2])


def trade_from_input(payload: TradeInputSchema) -> Trade:
    return Trade(
        id=payload.id,
        trade_no=payload.trade_no,
        symbol=payload.symbol.upper(),
        entry_date=payload.entry_date,
        side=payload.side,
        entries=_slots(payload.entries),
        exits=_slots(payload.exits),
        cmp=payload.cmp,
        sl=payload.sl,
        tsl=payload.tsl,
    )


def analyze_trades(request: AnalyticsRequest, settings: AppSettings) -> ReconciliationResponse:
    """Recompute journal trades from their lots and roll them into analytics."""

    options = _pipeline_options(request, settings)
    portfolio = _portfolio(request, settings)
    trades = [
        recompute_trade(
            trade_from_input(item),
            as_of=options.as_of,
            portfolio_size=portfolio,
            default_portfolio_size=options.default_portfolio_size,
        )
        for item in request.trades
    ]
    trades = apply_cumulative_pf(trades, options.use_cash_basis)
    records = project(trades, options.use_cash_basis)
    analytics = compute_portfolio_analytics(
        records,
        taxes_by_month=options.taxes_by_month,
        use_cash_basis=options.use_cash_basis,
        year=options.year,
    )
    return ReconciliationResponse(
        trades=[trade_to_schema(trade) for trade in trades],
        cash_exits=_cash_exits(records),
        analytics=analytics_to_schema(analytics),
        open_positions=sum(1 for trade in trades if trade.open_qty > 0),
    )


def parse_charges(statement: str, year: int | None = None) -> ChargesResponse | None:
    charges = parse_zerodha_charges(statement)
    if charges is None:
        return None
    return ChargesResponse(
        **asdict(charges),
        taxes_by_month=distribute_charges_by_month(charges, year),
    )


def read_tradebook(source: str | Path | IO[bytes], *, filename: str | None = None) -> tuple[list[Any], list[list[Any]]]:
    """Load a CSV or Excel tradebook into ``(headers, rows)`` without interpreting it.

    Sheets are read headerless so broker preambles survive for header-row
    detection; blank cells come back as ``None``.
    """

    name = filename or (str(source) if isinstance(source, (str, Path)) else "")
    if Path(name).suffix.lower() in EXCEL_SUFFIXES:
        frame = pd.read_excel(source, header=None, engine="openpyxl")
    else:
        frame = pd.read_csv(source, header=None, dtype=str, keep_default_na=False, skip_blank_lines=True)
    frame = frame.astype(object).where(frame.notna(), None)
    records = [[None if cell == "" else cell for cell in row] for row in frame.values.tolist()]
    if not records:
        return [], []
    logger.info("Loaded %s rows from %s", len(records) - 1, name or "upload")
    return records[0], records[1:]


__all__ = [
    "analyze_trades",
    "detect",
    "import_tradebook",
    "parse_charges",
    "read_tradebook",
    "result_to_response",
    "trade_from_input",
    "trade_to_schema",
]
